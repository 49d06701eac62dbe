# SPDX-License-Identifier: GPL-2.0-or-later
# Copyright (C) 2020 by the Linux Foundation
import subprocess
import logging
import re
import os
import copy
import json
import pathlib

import requests

from typing import Optional, Tuple, List, Union, Any

# global setting allowing us to turn off networking
can_network = True

__VERSION__ = '0.4.0'

logger = logging.getLogger('patchhub')

LOREADDR = 'https://lore.kernel.org'
# Page stride used by lore for both the atom feed and the list index
LORE_PAGE_SIZE = 200

DEFAULT_CONFIG = {
    'lore-url': LOREADDR,
    # Only top-level patch and rfc postings, no replies
    'feed-query': '?x=A&q=((s:patch+OR+s:rfc)+AND+NOT+s:re:)',
    # How many patchsets to show on one page of the listing
    'page-size': '30',
    # If these are not set, we'll use XDG locations
    'cache-dir': None,
    'data-dir': None,
    # Seconds to wait for lore before giving up
    'request-timeout': '30',
    # Used to download patchsets
    'b4-bin': 'b4',
}

# Environment variables that take precedence over git-config
ENV_OVERRIDES = {
    'PATCH_HUB_LORE_URL': 'lore-url',
    'PATCH_HUB_PAGE_SIZE': 'page-size',
    'PATCH_HUB_CACHE_DIR': 'cache-dir',
    'PATCH_HUB_DATA_DIR': 'data-dir',
}

# This is where we store actual config
MAIN_CONFIG = None
# This is git-config user.*
USER_CONFIG = None

# Used for storing our requests session
REQSESSION = None


class PatchHubError(Exception):
    pass


class FeedError(PatchHubError):
    pass


class EndOfFeed(PatchHubError):
    pass


class CatalogError(PatchHubError):
    pass


class SplitError(PatchHubError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f'{path}: {reason}')
        self.path = path


class PathNotFound(SplitError):
    def __init__(self, path: str) -> None:
        super().__init__(path, "Path doesn't exist")


class NotAFile(SplitError):
    def __init__(self, path: str) -> None:
        super().__init__(path, 'Not a file')


class PatchRegex:
    """
    The three patterns used to pull metadata out of a patch title. Compile
    once and share, they are never modified.
    """
    def __init__(self):
        # First [...] group mentioning PATCH or RFC, with no nested '['
        self.tag = re.compile(r'\[[^]]*(PATCH|RFC)[^\[]*]', flags=re.I)
        self.version = re.compile(r'[v|V] *(\d+)')
        self.series = re.compile(r'(\d+) */ *(\d+)')


class Author:
    def __init__(self, name: str = '', email: str = '') -> None:
        self.name = name
        self.email = email

    def __eq__(self, other):
        if not isinstance(other, Author):
            return NotImplemented
        return self.name == other.name and self.email == other.email

    def __hash__(self):
        return hash((self.name, self.email))

    def __str__(self):
        return f'{self.name} <{self.email}>'

    def __repr__(self):
        return f'Author({self.name!r}, {self.email!r})'


class Patch:
    def __init__(self, title: str, author: Author, message_id: str, in_reply_to: Optional[str] = None,
                 updated: str = '', version: int = 1, number_in_series: int = 1,
                 total_in_series: int = 1) -> None:
        self.title = title
        self.author = author
        self.message_id = message_id
        self.in_reply_to = in_reply_to
        self.updated = updated
        self.version = version
        self.number_in_series = number_in_series
        self.total_in_series = total_in_series

    @property
    def is_cover_letter(self) -> bool:
        return self.number_in_series == 0

    def to_dict(self) -> dict:
        return {
            'title': self.title,
            'version': self.version,
            'number_in_series': self.number_in_series,
            'total_in_series': self.total_in_series,
            'author': {'name': self.author.name, 'email': self.author.email},
            'message_id': self.message_id,
            'in_reply_to': self.in_reply_to,
            'updated': self.updated,
        }

    @staticmethod
    def from_dict(data: dict) -> 'Patch':
        author = data.get('author') or dict()
        return Patch(title=data['title'],
                     author=Author(author.get('name', ''), author.get('email', '')),
                     message_id=data['message_id'],
                     in_reply_to=data.get('in_reply_to'),
                     updated=data.get('updated', ''),
                     version=int(data.get('version', 1)),
                     number_in_series=int(data.get('number_in_series', 1)),
                     total_in_series=int(data.get('total_in_series', 1)))

    def __eq__(self, other):
        if not isinstance(other, Patch):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        out = list()
        out.append('  title: %s' % self.title)
        out.append('  author: %s' % self.author)
        out.append('  message_id: %s' % self.message_id)
        out.append('  in_reply_to: %s' % self.in_reply_to)
        out.append('  updated: %s' % self.updated)
        out.append('  version: %s' % self.version)
        out.append('  number_in_series: %s' % self.number_in_series)
        out.append('  total_in_series: %s' % self.total_in_series)

        return '\n'.join(out)


def update_metadata(patch: Patch, patterns: PatchRegex) -> None:
    matches = patterns.tag.search(patch.title)
    if not matches:
        return
    tag = matches.group(0)
    patch.title = patch.title.replace(tag, '', 1).strip()

    matches = patterns.version.search(tag)
    if matches:
        patch.version = int(matches.group(1))

    matches = patterns.series.search(tag)
    if matches:
        patch.number_in_series = int(matches.group(1))
        patch.total_in_series = int(matches.group(2))


def _run_command(cmdargs: List[str], stdin: Optional[bytes] = None,
                 rundir: Optional[str] = None) -> Tuple[int, bytes, bytes]:
    logger.debug('Running %s' % ' '.join(cmdargs))
    sp = subprocess.Popen(cmdargs, stdout=subprocess.PIPE, stdin=subprocess.PIPE, stderr=subprocess.PIPE,
                          cwd=rundir)
    (output, error) = sp.communicate(input=stdin)

    return sp.returncode, output, error


def git_run_command(gitdir: Optional[str], args: List[str], stdin: Optional[bytes] = None,
                    decode: bool = True) -> Tuple[int, Union[str, bytes]]:
    cmdargs = ['git', '--no-pager']
    if gitdir:
        if os.path.exists(os.path.join(gitdir, '.git')):
            gitdir = os.path.join(gitdir, '.git')
        cmdargs += ['--git-dir', gitdir]
    cmdargs += args

    try:
        ecode, out, err = _run_command(cmdargs, stdin=stdin)
    except FileNotFoundError:
        logger.debug('git is not installed')
        return 127, '' if decode else b''

    if decode:
        out = out.decode(errors='replace')

    return ecode, out


def get_config_from_git(regexp: str, defaults: Optional[dict] = None) -> dict:
    args = ['config', '-z', '--get-regexp', regexp]
    ecode, out = git_run_command(None, args)
    gitconfig = defaults
    if not gitconfig:
        gitconfig = dict()
    if not out:
        return gitconfig

    for line in out.split('\x00'):
        if not line:
            continue
        try:
            key, value = line.split('\n', 1)
        except ValueError:
            logger.debug('Ignoring git config entry %s', line)
            continue
        chunks = key.split('.')
        cfgkey = chunks[-1].lower()
        gitconfig[cfgkey] = value

    return gitconfig


def get_main_config() -> dict:
    global MAIN_CONFIG
    if MAIN_CONFIG is None:
        defcfg = copy.deepcopy(DEFAULT_CONFIG)
        config = get_config_from_git(r'patchhub\..*', defaults=defcfg)
        for envvar, cfgkey in ENV_OVERRIDES.items():
            if envvar in os.environ:
                logger.debug('Overriding %s from %s', cfgkey, envvar)
                config[cfgkey] = os.environ[envvar]
        MAIN_CONFIG = config

    return MAIN_CONFIG


def get_user_config() -> dict:
    global USER_CONFIG
    if USER_CONFIG is None:
        USER_CONFIG = get_config_from_git(r'user\..*')
    return USER_CONFIG


def get_config_int(config: dict, key: str) -> int:
    try:
        return int(config[key])
    except (KeyError, TypeError, ValueError):
        logger.critical('ERROR: %s must be an integer: %s', key, config.get(key))
        return int(DEFAULT_CONFIG[key])


def get_data_dir(appname: str = 'patch-hub') -> str:
    config = get_main_config()
    if config.get('data-dir'):
        datadir = config['data-dir']
    else:
        if 'XDG_DATA_HOME' in os.environ:
            datahome = os.environ['XDG_DATA_HOME']
        else:
            datahome = os.path.join(str(pathlib.Path.home()), '.local', 'share')
        datadir = os.path.join(datahome, appname)
    pathlib.Path(datadir).mkdir(parents=True, exist_ok=True)
    return datadir


def get_cache_dir(appname: str = 'patch-hub') -> str:
    config = get_main_config()
    if config.get('cache-dir'):
        cachedir = config['cache-dir']
    else:
        if 'XDG_CACHE_HOME' in os.environ:
            cachehome = os.environ['XDG_CACHE_HOME']
        else:
            cachehome = os.path.join(str(pathlib.Path.home()), '.cache')
        cachedir = os.path.join(cachehome, appname)
    pathlib.Path(cachedir).mkdir(parents=True, exist_ok=True)
    return cachedir


def get_patchsets_dir() -> str:
    patchsets = os.path.join(get_cache_dir(), 'patchsets')
    pathlib.Path(patchsets).mkdir(parents=True, exist_ok=True)
    return patchsets


def get_data_file(name: str) -> str:
    return os.path.join(get_data_dir(), name)


def save_json(data: Any, filepath: str) -> None:
    parent = os.path.dirname(filepath)
    if parent:
        pathlib.Path(parent).mkdir(parents=True, exist_ok=True)
    # Write next to the destination and rename, so readers never see half a file
    tmpfile = f'{filepath}.tmp'
    with open(tmpfile, 'w') as fh:
        json.dump(data, fh)
    os.rename(tmpfile, filepath)
    logger.debug('Saved %s', filepath)


def load_json(filepath: str) -> Any:
    with open(filepath, 'r') as fh:
        return json.load(fh)


def get_requests_session() -> requests.Session:
    global REQSESSION
    if REQSESSION is None:
        REQSESSION = requests.session()
        REQSESSION.headers.update({'User-Agent': 'patch-hub/%s' % __VERSION__})
    return REQSESSION
