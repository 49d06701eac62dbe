#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: GPL-2.0-or-later
# Copyright (C) 2020 by the Linux Foundation
#
import io
import os
import sys
import argparse

import feedparser
import requests

import patchhub

from typing import Optional, List, Dict, Tuple
from typing import Protocol

logger = patchhub.logger


class LoreProvider(Protocol):
    """Where the session and the catalog builder get their raw pages from."""

    def request_patch_feed(self, target_list: str, offset: int) -> str:
        """Return an atom document with the entries starting at offset.

        Raises EndOfFeed when there is nothing at or after offset, and
        FeedError on any other failure.
        """
        ...

    def request_available_lists(self, offset: int) -> str:
        """Return the lore index page starting at offset, raises CatalogError."""
        ...


class LoreAPIClient:
    def __init__(self, config: Optional[dict] = None,
                 session: Optional[requests.Session] = None) -> None:
        if config is None:
            config = patchhub.get_main_config()
        self.lore_url = config.get('lore-url', patchhub.LOREADDR).rstrip('/')
        self.feed_query = config.get('feed-query', patchhub.DEFAULT_CONFIG['feed-query'])
        self.timeout = patchhub.get_config_int(config, 'request-timeout')
        self.session = session

    def _get(self, url: str) -> requests.Response:
        if not patchhub.can_network:
            raise requests.ConnectionError('Networking is disabled (offline mode)')
        if self.session is None:
            self.session = patchhub.get_requests_session()
        logger.debug('GET %s', url)
        return self.session.get(url, timeout=self.timeout)

    def request_patch_feed(self, target_list: str, offset: int) -> str:
        url = f'{self.lore_url}/{target_list}/{self.feed_query}&o={offset}'
        try:
            resp = self._get(url)
        except requests.RequestException as ex:
            raise patchhub.FeedError(f'Unable to fetch the feed for {target_list}: {ex}') from ex
        if resp.status_code != 200:
            raise patchhub.FeedError(f'Server returned an error for {target_list}: {resp.status_code}')
        body = resp.text
        resp.close()
        # This is what lore hands back once we are past the last entry
        if body.strip() == '</feed>':
            raise patchhub.EndOfFeed(f'No entries in {target_list} past offset {offset}')
        return body

    def request_available_lists(self, offset: int) -> str:
        url = f'{self.lore_url}/?&o={offset}'
        try:
            resp = self._get(url)
        except requests.RequestException as ex:
            raise patchhub.CatalogError(f'Unable to fetch available lists: {ex}') from ex
        if resp.status_code != 200:
            raise patchhub.CatalogError(f'Server returned an error: {resp.status_code}')
        body = resp.text
        resp.close()
        return body

    def request_patch_html(self, target_list: str, message_id: str) -> str:
        url = f'{self.lore_url}/{target_list}/{message_id}/'
        try:
            resp = self._get(url)
        except requests.RequestException as ex:
            raise patchhub.FeedError(f'Unable to fetch {message_id}: {ex}') from ex
        if resp.status_code != 200:
            raise patchhub.FeedError(f'Server returned an error for {message_id}: {resp.status_code}')
        body = resp.text
        resp.close()
        return body


def _get_in_reply_to(entry: dict) -> Optional[str]:
    # feedparser keeps unknown elements that carry attributes as a dict
    for key in ('thr_in-reply-to', 'in-reply-to'):
        irt = entry.get(key)
        if isinstance(irt, dict) and irt.get('href'):
            return irt['href']
    return None


def get_feed_entries(body: str) -> list:
    parsed = feedparser.parse(io.BytesIO(body.encode()))
    if parsed.bozo and not parsed.entries:
        raise patchhub.FeedError('Unable to parse patch feed: %s' % parsed.get('bozo_exception'))
    return parsed.entries


def entries_to_patches(entries: list) -> List[patchhub.Patch]:
    patches = list()
    for entry in entries:
        message_id = entry.get('link')
        if not message_id:
            logger.debug('Skipping entry without a link: %s', entry.get('title'))
            continue
        detail = entry.get('author_detail') or dict()
        author = patchhub.Author(detail.get('name', ''), detail.get('email', ''))
        patches.append(patchhub.Patch(title=entry.get('title', ''),
                                      author=author,
                                      message_id=message_id,
                                      in_reply_to=_get_in_reply_to(entry),
                                      updated=entry.get('updated', '')))
    return patches


def parse_patch_feed(body: str) -> List[patchhub.Patch]:
    return entries_to_patches(get_feed_entries(body))


class LoreSession:
    processed: Dict[str, patchhub.Patch]
    representative: List[str]
    offset: int

    def __init__(self, target_list: str) -> None:
        self._target_list = target_list
        self.processed = dict()
        self.representative = list()
        self.offset = 0
        self.patch_regex = patchhub.PatchRegex()

    @property
    def target_list(self) -> str:
        return self._target_list

    def __repr__(self):
        out = list()
        out.append('target_list: %s' % self.target_list)
        out.append('offset: %s' % self.offset)
        out.append('processed: %s' % len(self.processed))
        out.append('--- Representative ---')
        for message_id in self.representative:
            out.append('  %s' % self.processed[message_id].title)

        return '\n'.join(out)

    def fetch_n_representative(self, provider: LoreProvider, n: int) -> None:
        while len(self.representative) < n:
            try:
                body = provider.request_patch_feed(self.target_list, self.offset)
            except patchhub.EndOfFeed:
                logger.debug('Reached the end of %s at offset %s', self.target_list, self.offset)
                break
            entries = get_feed_entries(body)
            if not entries:
                logger.debug('Empty page for %s at offset %s', self.target_list, self.offset)
                break
            self.ingest(entries_to_patches(entries))
            # lore counts every entry, usable or not
            self.offset += len(entries)
            logger.debug('Have %s representative patches after offset %s',
                         len(self.representative), self.offset)

    def ingest(self, patches: List[patchhub.Patch]) -> List[str]:
        added = list()
        for patch in patches:
            patchhub.update_metadata(patch, self.patch_regex)
            if patch.message_id in self.processed:
                logger.debug('Already processed, skipping %s', patch.message_id)
                continue
            self.processed[patch.message_id] = patch
            added.append(patch.message_id)

        for message_id in added:
            if self._is_representative(self.processed[message_id]):
                self.representative.append(message_id)

        return added

    def _is_representative(self, patch: patchhub.Patch) -> bool:
        if patch.number_in_series > 1:
            return False
        if patch.number_in_series == 0:
            return True
        # Patch 1/N sent as a reply to a cover letter of the same version is
        # already represented by that cover letter
        if patch.in_reply_to is not None:
            parent = self.processed.get(patch.in_reply_to)
            if parent is not None and parent.is_cover_letter and parent.version == patch.version:
                logger.debug('%s is covered by %s', patch.message_id, parent.message_id)
                return False
        return True

    def patch(self, message_id: str) -> Optional[patchhub.Patch]:
        return self.processed.get(message_id)

    def representative_ids(self) -> Tuple[str, ...]:
        return tuple(self.representative)

    def page(self, page_size: int, page_number: int) -> Optional[List[patchhub.Patch]]:
        if page_size < 1 or page_number < 1:
            return None
        lower = page_size * (page_number - 1)
        if lower >= len(self.representative):
            return None
        upper = page_size * page_number
        return [self.processed[x] for x in self.representative[lower:upper]]


def save_bookmarked_patchsets(patches: List[patchhub.Patch], filepath: str) -> None:
    patchhub.save_json([x.to_dict() for x in patches], filepath)


def load_bookmarked_patchsets(filepath: str) -> List[patchhub.Patch]:
    if not os.path.exists(filepath):
        return list()
    return [patchhub.Patch.from_dict(x) for x in patchhub.load_json(filepath)]


def save_reviewed_patchsets(reviewed: Dict[str, List[int]], filepath: str) -> None:
    patchhub.save_json(reviewed, filepath)


def load_reviewed_patchsets(filepath: str) -> Dict[str, List[int]]:
    if not os.path.exists(filepath):
        return dict()
    return {key: list(val) for key, val in patchhub.load_json(filepath).items()}


def _bookmarks_file() -> str:
    return patchhub.get_data_file('bookmarked_patchsets.json')


def _reviewed_file() -> str:
    return patchhub.get_data_file('reviewed_patchsets.json')


def show_patch_row(at: int, patch: patchhub.Patch, reviewed: bool = False) -> None:
    if patch.total_in_series > 1:
        series = '%s/%s' % (str(patch.number_in_series).zfill(len(str(patch.total_in_series))),
                            patch.total_in_series)
    else:
        series = '-'
    flag = 'R' if reviewed else ' '
    logger.info('%4d %s v%-3s %-7s %s', at, flag, patch.version, series, patch.title)
    logger.info('       %s (%s)', patch.author, patch.updated)


def cmd_latest(cmdargs: argparse.Namespace) -> None:
    config = patchhub.get_main_config()
    pagesize = cmdargs.pagesize
    if not pagesize:
        pagesize = patchhub.get_config_int(config, 'page-size')
    if pagesize < 1 or cmdargs.page < 1:
        logger.critical('Page and page size must be positive numbers')
        sys.exit(1)

    lsession = LoreSession(cmdargs.listname)
    client = LoreAPIClient(config)
    logger.info('Grabbing latest patchsets from %s', cmdargs.listname)
    try:
        lsession.fetch_n_representative(client, pagesize * cmdargs.page)
    except patchhub.FeedError as ex:
        # Keep whatever we managed to gather before the failure
        logger.critical('ERROR: %s', ex)
        if not lsession.representative:
            sys.exit(1)

    patches = lsession.page(pagesize, cmdargs.page)
    if patches is None:
        logger.info('No patchsets on page %s', cmdargs.page)
        return

    logger.info('---')
    first = pagesize * (cmdargs.page - 1) + 1
    reviewed = load_reviewed_patchsets(_reviewed_file())
    for at, patch in enumerate(patches, start=first):
        show_patch_row(at, patch, patch.message_id in reviewed)

    if cmdargs.bookmark is None:
        return
    if not first <= cmdargs.bookmark < first + len(patches):
        logger.critical('Row %s is not on this page', cmdargs.bookmark)
        sys.exit(1)
    patch = patches[cmdargs.bookmark - first]
    bfile = _bookmarks_file()
    bookmarked = load_bookmarked_patchsets(bfile)
    if patch.message_id in {x.message_id for x in bookmarked}:
        logger.info('Already bookmarked: %s', patch.title)
        return
    bookmarked.append(patch)
    save_bookmarked_patchsets(bookmarked, bfile)
    logger.info('Bookmarked: %s', patch.title)


def cmd_bookmarks(cmdargs: argparse.Namespace) -> None:
    bfile = _bookmarks_file()
    bookmarked = load_bookmarked_patchsets(bfile)
    if cmdargs.remove is not None:
        if not 1 <= cmdargs.remove <= len(bookmarked):
            logger.critical('No such bookmark: %s', cmdargs.remove)
            sys.exit(1)
        patch = bookmarked.pop(cmdargs.remove - 1)
        save_bookmarked_patchsets(bookmarked, bfile)
        logger.info('Removed bookmark: %s', patch.title)
        return

    if not bookmarked:
        logger.info('No bookmarked patchsets')
        return
    reviewed = load_reviewed_patchsets(_reviewed_file())
    for at, patch in enumerate(bookmarked, start=1):
        show_patch_row(at, patch, patch.message_id in reviewed)
        logger.info('       %s', patch.message_id)
