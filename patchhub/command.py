#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: GPL-2.0-or-later
# Copyright (C) 2020 by the Linux Foundation
#
import argparse
import logging
import patchhub
import sys

logger = patchhub.logger


def cmd_lists(cmdargs):
    import patchhub.lists
    patchhub.lists.main(cmdargs)


def cmd_latest(cmdargs):
    import patchhub.lore
    patchhub.lore.cmd_latest(cmdargs)


def cmd_bookmarks(cmdargs):
    import patchhub.lore
    patchhub.lore.cmd_bookmarks(cmdargs)


def cmd_split(cmdargs):
    import patchhub.mbox
    patchhub.mbox.cmd_split(cmdargs)


def cmd_download(cmdargs):
    import patchhub.mbox
    patchhub.mbox.cmd_download(cmdargs)


def cmd_reply(cmdargs):
    import patchhub.mbox
    patchhub.mbox.cmd_reply(cmdargs)


def setup_parser() -> argparse.ArgumentParser:
    # noinspection PyTypeChecker
    parser = argparse.ArgumentParser(
        prog='patch-hub',
        description='Browse patchsets posted to lore.kernel.org mailing lists',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument('--version', action='version', version=patchhub.__VERSION__)
    parser.add_argument('-d', '--debug', action='store_true', default=False,
                        help='Add more debugging info to the output')
    parser.add_argument('-q', '--quiet', action='store_true', default=False,
                        help='Output critical information only')
    parser.add_argument('--offline-mode', action='store_true', default=False,
                        help='Do not perform any network queries')

    subparsers = parser.add_subparsers(help='sub-command help', dest='subcmd')

    # patch-hub lists
    sp_lists = subparsers.add_parser('lists', help='Show mailing lists available on lore')
    sp_lists.add_argument('-r', '--refresh', action='store_true', default=False,
                          help='Fetch the list index again instead of using the saved copy')
    sp_lists.set_defaults(func=cmd_lists)

    # patch-hub latest
    sp_latest = subparsers.add_parser('latest', help='Show latest patchsets sent to a mailing list')
    sp_latest.add_argument('listname', help='Mailing list to browse (e.g. netdev)')
    sp_latest.add_argument('-p', '--page', type=int, default=1,
                           help='Page of results to show')
    sp_latest.add_argument('-s', '--page-size', dest='pagesize', type=int, default=None,
                           help='Patchsets per page (default: patchhub.page-size)')
    sp_latest.add_argument('-b', '--bookmark', type=int, default=None,
                           help='Bookmark the patchset shown at this row')
    sp_latest.set_defaults(func=cmd_latest)

    # patch-hub bookmarks
    sp_bm = subparsers.add_parser('bookmarks', help='Show bookmarked patchsets')
    sp_bm.add_argument('-r', '--remove', type=int, default=None,
                       help='Remove the bookmark at this row')
    sp_bm.set_defaults(func=cmd_bookmarks)

    # patch-hub split
    sp_split = subparsers.add_parser('split', help='Explode a downloaded patchset into messages')
    sp_split.add_argument('mboxfile', help='Patchset mbox to split')
    sp_split.add_argument('-o', '--outdir', default=None,
                          help='Write each message into this directory')
    sp_split.set_defaults(func=cmd_split)

    # patch-hub download
    sp_dl = subparsers.add_parser('download', help='Download a patchset using b4')
    sp_dl.add_argument('msgurl', help='Lore URL of the representative message')
    sp_dl.add_argument('-v', '--use-version', dest='wantver', type=int, default=1,
                       help='Version of the patchset to download')
    sp_dl.add_argument('-o', '--outdir', default=None,
                       help='Save into this directory (default: patchsets cache)')
    sp_dl.set_defaults(func=cmd_download)

    # patch-hub reply
    sp_reply = subparsers.add_parser('reply', help='Prepare replies for every message in a patchset')
    sp_reply.add_argument('msgurl', help='Lore URL of the representative message')
    sp_reply.add_argument('-m', '--mbox', dest='mboxfile', default=None,
                          help='Use this patchset mbox instead of downloading it with b4')
    sp_reply.add_argument('-v', '--use-version', dest='wantver', type=int, default=1,
                          help='Version of the patchset to download')
    sp_reply.add_argument('-o', '--outdir', default='.',
                          help='Write reply templates into this directory')
    sp_reply.add_argument('--reviewed-by', dest='reviewedby', action='store_true', default=False,
                          help='Add your own Reviewed-by trailer to every reply')
    sp_reply.add_argument('--run', action='store_true', default=False,
                          help='Run the git send-email --dry-run commands and remember reviewed patches')
    sp_reply.set_defaults(func=cmd_reply)

    return parser


def cmd():
    parser = setup_parser()
    cmdargs = parser.parse_args()
    logger.setLevel(logging.DEBUG)

    ch = logging.StreamHandler()
    formatter = logging.Formatter('%(message)s')
    ch.setFormatter(formatter)

    if cmdargs.quiet:
        ch.setLevel(logging.CRITICAL)
    elif cmdargs.debug:
        ch.setLevel(logging.DEBUG)
    else:
        ch.setLevel(logging.INFO)

    logger.addHandler(ch)

    if 'func' not in cmdargs:
        parser.print_help()
        sys.exit(1)

    if cmdargs.offline_mode:
        logger.info('Running in OFFLINE mode')
        patchhub.can_network = False

    cmdargs.func(cmdargs)


if __name__ == '__main__':
    cmd()
