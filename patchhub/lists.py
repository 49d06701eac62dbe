#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: GPL-2.0-or-later
# Copyright (C) 2020 by the Linux Foundation
#
import os
import re
import sys
import html
import argparse

import patchhub
import patchhub.lore

from typing import List

logger = patchhub.logger

PRE_BLOCK_RE = re.compile(r'<pre>(.*?)</pre>', flags=re.S)
# Each list in the index is an anchor followed by its description, up to the
# next "*" bullet or the end of the block
LIST_ENTRY_RE = re.compile(r'<a\s+href="[^"]*">([^<]*)</a>\s*(.*?)\s*(?=\*|\Z)', flags=re.S)


class MailingList:
    def __init__(self, name: str, description: str = '') -> None:
        self.name = name
        self.description = description

    def __eq__(self, other):
        if not isinstance(other, MailingList):
            return NotImplemented
        return self.name == other.name and self.description == other.description

    def __lt__(self, other):
        return self.name < other.name

    def __hash__(self):
        return hash((self.name, self.description))

    def __repr__(self):
        return f'MailingList({self.name!r}, {self.description!r})'

    def to_dict(self) -> dict:
        return {'name': self.name, 'description': self.description}

    @staticmethod
    def from_dict(data: dict) -> 'MailingList':
        return MailingList(data['name'], data.get('description', ''))


def process_available_lists(body: str) -> List[MailingList]:
    blocks = PRE_BLOCK_RE.findall(body)
    # The first two blocks are the search form and the pager
    if len(blocks) < 3:
        logger.debug('No list index found in page')
        return list()

    mls = list()
    for name, description in LIST_ENTRY_RE.findall(blocks[2]):
        name = html.unescape(name.strip())
        if not name or name == 'all':
            continue
        description = ' '.join(html.unescape(description).split())
        mls.append(MailingList(name, description))

    return mls


def fetch_available_lists(provider: patchhub.lore.LoreProvider) -> List[MailingList]:
    seen = dict()
    offset = 0
    while True:
        try:
            body = provider.request_available_lists(offset)
        except patchhub.EndOfFeed:
            logger.debug('No more lists past offset %s', offset)
            break
        found = process_available_lists(body)
        new = 0
        for ml in found:
            if ml.name in seen:
                continue
            seen[ml.name] = ml
            new += 1
        logger.debug('Offset %s: %s lists, %s new', offset, len(found), new)
        if not new:
            break
        offset += patchhub.LORE_PAGE_SIZE

    return sorted(seen.values(), key=lambda x: x.name)


def save_available_lists(mls: List[MailingList], filepath: str) -> None:
    patchhub.save_json([x.to_dict() for x in mls], filepath)


def load_available_lists(filepath: str) -> List[MailingList]:
    if not os.path.exists(filepath):
        return list()
    return [MailingList.from_dict(x) for x in patchhub.load_json(filepath)]


def main(cmdargs: argparse.Namespace) -> None:
    lfile = patchhub.get_data_file('mailing_lists.json')
    mls = list()
    if not cmdargs.refresh:
        mls = load_available_lists(lfile)
    if not mls:
        logger.info('Grabbing available lists')
        client = patchhub.lore.LoreAPIClient(patchhub.get_main_config())
        try:
            mls = fetch_available_lists(client)
        except patchhub.CatalogError as ex:
            logger.critical('ERROR: %s', ex)
            sys.exit(1)
        save_available_lists(mls, lfile)

    for ml in mls:
        logger.info('%-30s %s', ml.name, ml.description)
