#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: GPL-2.0-or-later
# Copyright (C) 2020 by the Linux Foundation
#
import os
import re
import sys
import html
import shlex
import pathlib
import argparse
import urllib.parse

import patchhub
import patchhub.lore

from typing import Optional, List, Union, Tuple

logger = patchhub.logger

# A message starts at a "From " line that follows a blank line
MBOX_SPLIT_RE = re.compile(r'(?:(?<=\n\n)|(?<=\n\r\n))(?=From )')
LORE_PREFIX_RE = re.compile(r'^https?://lore\.kernel\.org/')
# lore shows the send-email invocation for replying under each message
SEND_EMAIL_RE = re.compile(r'git-send-email\(1\):(.*?)/path/to/YOUR_REPLY', flags=re.S)
LONG_OPTION_RE = re.compile(r'--[^\s=]+=[^\s]+')


def split_mbox(contents: Union[str, bytes]) -> List[str]:
    if isinstance(contents, bytes):
        contents = contents.decode(errors='surrogateescape')
    if not contents:
        return list()
    return [x for x in MBOX_SPLIT_RE.split(contents) if x]


def _read_mbox(path: str) -> str:
    # newline='' keeps line endings exactly as they are on disk, and
    # surrogateescape round-trips bytes that are not valid utf-8
    with open(path, 'r', newline='', encoding='utf-8', errors='surrogateescape') as fh:
        return fh.read()


def split_patchset(path: str) -> List[str]:
    """
    Explode a downloaded patchset into its messages, in file order.

    If b4 saved the cover letter next to the mbox (same name with a .cover
    extension), its messages come first. Cover letters are not otherwise
    told apart from patches here.
    """
    if not os.path.exists(path):
        raise patchhub.PathNotFound(path)
    if not os.path.isfile(path):
        raise patchhub.NotAFile(path)

    msgs = list()
    if path.endswith('.mbx'):
        coverfile = path[:-4] + '.cover'
        if os.path.isfile(coverfile):
            logger.debug('Adding cover letter from %s', coverfile)
            msgs += split_mbox(_read_mbox(coverfile))

    msgs += split_mbox(_read_mbox(path))
    logger.debug('Split %s into %s messages', path, len(msgs))
    return msgs


def get_mbox_name(message_id: str) -> str:
    mboxname = LORE_PREFIX_RE.sub('', message_id).replace('/', '.')
    if not mboxname.endswith('.'):
        mboxname += '.'
    return mboxname + 'mbx'


def download_patchset(patch: patchhub.Patch, outdir: Optional[str] = None,
                      config: Optional[dict] = None) -> str:
    if config is None:
        config = patchhub.get_main_config()
    if outdir is None:
        outdir = patchhub.get_patchsets_dir()
    pathlib.Path(outdir).mkdir(parents=True, exist_ok=True)

    mboxname = get_mbox_name(patch.message_id)
    filepath = os.path.join(outdir, mboxname)
    if os.path.exists(filepath):
        logger.debug('Using already downloaded %s', filepath)
        return filepath

    logger.info('Downloading v%s of %s', patch.version, patch.title)
    cmdargs = [config.get('b4-bin', 'b4'), '--quiet', 'am', '--use-version', str(patch.version),
               patch.message_id, '--outdir', outdir, '--mbox-name', mboxname]
    try:
        ecode, out, err = patchhub._run_command(cmdargs)
    except FileNotFoundError as ex:
        raise patchhub.PatchHubError(f'Unable to run {cmdargs[0]}: {ex}') from ex
    if ecode > 0:
        raise patchhub.PatchHubError('Could not download %s: %s'
                                     % (patch.message_id, err.decode(errors='replace').strip()))
    return filepath


def make_reply_template(message: str, trailers: Optional[List[str]] = None) -> str:
    headers = list()
    lines = message.splitlines()
    at = 0
    # Headers end at the first blank line after something was collected
    for at, line in enumerate(lines):
        if line.startswith('Subject: '):
            subject = line[9:]
            if not re.search(r'^Re:', subject, flags=re.I):
                subject = 'Re: ' + subject
            headers.append(f'Subject: {subject}')
        elif line.startswith(('From: ', 'Date: ', 'Message-Id: ', 'Message-ID: ')):
            continue
        elif line.startswith('From '):
            # mbox separator
            continue
        elif line.strip():
            headers.append(line)
        elif headers:
            break
    else:
        at = len(lines)

    out = headers + ['']
    out += [f'> {x}'.rstrip() for x in lines[at + 1:]]
    if trailers:
        out.append('')
        out += trailers
    return '\n'.join(out) + '\n'


def get_message_id(message: str) -> Optional[str]:
    matches = re.search(r'^Message-Id:\s*<([^>]+)>', message, flags=re.M | re.I)
    if matches:
        return matches.group(1)
    return None


def get_subject(message: str) -> Optional[str]:
    matches = re.search(r'^Subject:\s*(.*)$', message, flags=re.M)
    if matches:
        return matches.group(1).strip()
    return None


def get_list_from_url(msgurl: str) -> Optional[str]:
    loc = urllib.parse.urlparse(msgurl)
    chunks = loc.path.strip('/').split('/')
    if not loc.scheme or len(chunks) < 2:
        return None
    return chunks[0]


def get_send_email_command(patch_html: str) -> List[str]:
    # Never sends anything and never harvests cc addresses
    cmdargs = ['git', 'send-email', '--dry-run', '--suppress-cc=all']
    matches = SEND_EMAIL_RE.search(patch_html)
    if not matches:
        logger.debug('No git-send-email instructions found')
        return cmdargs
    cmdargs += LONG_OPTION_RE.findall(html.unescape(matches.group(1)))
    return cmdargs


def write_reply_templates(msgs: List[str], outdir: str,
                          trailers: Optional[List[str]] = None) -> List[Tuple[Optional[str], str]]:
    pathlib.Path(outdir).mkdir(parents=True, exist_ok=True)
    replies = list()
    for at, msg in enumerate(msgs):
        msgid = get_message_id(msg)
        slug = msgid or '%04d' % at
        replyfile = os.path.join(outdir, '%s-reply.mbx' % slug.replace('/', '_'))
        with open(replyfile, 'w', encoding='utf-8', errors='surrogateescape') as fh:
            fh.write(make_reply_template(msg, trailers))
        logger.debug('Wrote %s', replyfile)
        replies.append((msgid, replyfile))
    return replies


def prepare_reply_commands(client: patchhub.lore.LoreAPIClient, target_list: str,
                           replies: List[Tuple[Optional[str], str]]) -> List[List[str]]:
    commands = list()
    for msgid, replyfile in replies:
        if msgid is None:
            raise patchhub.PatchHubError(f'No Message-Id for {replyfile}')
        cmdargs = get_send_email_command(client.request_patch_html(target_list, msgid))
        cmdargs.append(replyfile)
        commands.append(cmdargs)
    return commands


def run_reply_commands(commands: List[List[str]]) -> List[int]:
    successful = list()
    for at, cmdargs in enumerate(commands):
        try:
            ecode, out, err = patchhub._run_command(cmdargs)
        except FileNotFoundError as ex:
            raise patchhub.PatchHubError(f'Unable to run {cmdargs[0]}: {ex}') from ex
        if ecode > 0:
            logger.critical('git send-email failed for %s', cmdargs[-1])
            logger.critical(err.decode(errors='replace').strip())
            continue
        successful.append(at)
    return successful


def record_reviewed(msgurl: str, indexes: List[int], filepath: Optional[str] = None) -> None:
    if filepath is None:
        filepath = patchhub.get_data_file('reviewed_patchsets.json')
    reviewed = patchhub.lore.load_reviewed_patchsets(filepath)
    reviewed[msgurl] = sorted(set(reviewed.get(msgurl, list())) | set(indexes))
    patchhub.lore.save_reviewed_patchsets(reviewed, filepath)


def _make_patch(msgurl: str, wantver: int) -> patchhub.Patch:
    return patchhub.Patch(title=msgurl, author=patchhub.Author(), message_id=msgurl, version=wantver)


def cmd_split(cmdargs: argparse.Namespace) -> None:
    try:
        msgs = split_patchset(cmdargs.mboxfile)
    except patchhub.SplitError as ex:
        logger.critical('ERROR: %s', ex)
        sys.exit(1)

    logger.info('Found %s messages in %s', len(msgs), cmdargs.mboxfile)
    for at, msg in enumerate(msgs, start=1):
        logger.info('  %s: %s', at, get_subject(msg) or '(no subject)')
    if not cmdargs.outdir:
        return
    pathlib.Path(cmdargs.outdir).mkdir(parents=True, exist_ok=True)
    for at, msg in enumerate(msgs, start=1):
        emlfile = os.path.join(cmdargs.outdir, '%04d.eml' % at)
        with open(emlfile, 'w', newline='', encoding='utf-8', errors='surrogateescape') as fh:
            fh.write(msg)
    logger.info('Wrote %s messages into %s', len(msgs), cmdargs.outdir)


def cmd_download(cmdargs: argparse.Namespace) -> None:
    try:
        filepath = download_patchset(_make_patch(cmdargs.msgurl, cmdargs.wantver), outdir=cmdargs.outdir)
    except patchhub.PatchHubError as ex:
        logger.critical('ERROR: %s', ex)
        sys.exit(1)
    logger.info('Saved %s', filepath)


def cmd_reply(cmdargs: argparse.Namespace) -> None:
    trailers = list()
    if cmdargs.reviewedby:
        usercfg = patchhub.get_user_config()
        if 'name' not in usercfg or 'email' not in usercfg:
            logger.critical('Set user.name and user.email in git config to add Reviewed-by')
            sys.exit(1)
        trailers.append('Reviewed-by: %s <%s>' % (usercfg['name'], usercfg['email']))

    try:
        mboxfile = cmdargs.mboxfile
        if not mboxfile:
            mboxfile = download_patchset(_make_patch(cmdargs.msgurl, cmdargs.wantver))
        msgs = split_patchset(mboxfile)
    except patchhub.PatchHubError as ex:
        logger.critical('ERROR: %s', ex)
        sys.exit(1)
    if not msgs:
        logger.critical('No messages in %s', mboxfile)
        sys.exit(1)

    replies = write_reply_templates(msgs, cmdargs.outdir, trailers)
    logger.info('Wrote %s reply templates into %s', len(replies), cmdargs.outdir)

    target_list = get_list_from_url(cmdargs.msgurl)
    if target_list is None:
        logger.info('Not a lore URL, not preparing git send-email commands')
        return
    client = patchhub.lore.LoreAPIClient(patchhub.get_main_config())
    try:
        commands = prepare_reply_commands(client, target_list, replies)
    except patchhub.PatchHubError as ex:
        logger.critical('ERROR: %s', ex)
        sys.exit(1)

    if not cmdargs.run:
        logger.info('---')
        for cmd in commands:
            logger.info('%s', shlex.join(cmd))
        return

    try:
        successful = run_reply_commands(commands)
    except patchhub.PatchHubError as ex:
        logger.critical('ERROR: %s', ex)
        sys.exit(1)
    logger.info('%s of %s replies passed git send-email --dry-run', len(successful), len(commands))
    if trailers and successful:
        record_reviewed(cmdargs.msgurl, successful)
