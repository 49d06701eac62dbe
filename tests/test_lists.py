import pytest
import patchhub
import patchhub.lists
import os
import pathlib

from patchhub.lists import MailingList


def test_process_available_lists(sampledir: str) -> None:
    with open(os.path.join(sampledir, 'lists-page1.html'), 'r') as fh:
        body = fh.read()
    assert patchhub.lists.process_available_lists(body) == [
        MailingList('netdev', 'Netdev List Archive on lore.kernel.org'),
        MailingList('amd-gfx', 'AMD GFX & Display Archive'),
        MailingList('lkml', 'LKML Archive on lore.kernel.org'),
    ]


@pytest.mark.parametrize('body', [
    '',
    '<html><body><pre>only one</pre></body></html>',
    '<html><body><pre>a</pre><pre>b</pre><pre></pre></body></html>',
])
def test_process_available_lists_nothing(body: str) -> None:
    assert patchhub.lists.process_available_lists(body) == []


def test_fetch_available_lists(fakeclient) -> None:
    client = fakeclient(lists={0: 'lists-page1.html', 200: 'lists-page2.html'})
    mls = patchhub.lists.fetch_available_lists(client)
    assert [x.name for x in mls] == ['amd-gfx', 'bpf', 'linux-doc', 'lkml', 'netdev']
    assert client.lists_calls == [0, 200, 400]


def test_fetch_available_lists_dedupes(fakeclient) -> None:
    # A server that keeps returning the same page must not loop forever
    client = fakeclient(lists={0: 'lists-page1.html', 200: 'lists-page1.html', 400: 'lists-page2.html'})
    mls = patchhub.lists.fetch_available_lists(client)
    assert [x.name for x in mls] == ['amd-gfx', 'lkml', 'netdev']
    assert client.lists_calls == [0, 200]


def test_fetch_available_lists_error(fakeclient) -> None:
    client = fakeclient(lists={0: 'lists-page1.html', 200: 'lists-page2.html'}, lists_error_at=200)
    with pytest.raises(patchhub.CatalogError):
        patchhub.lists.fetch_available_lists(client)


def test_mailing_list_sorting() -> None:
    mls = [
        MailingList('deref', 'description'),
        MailingList('unit', 'description'),
        MailingList('closure', 'description'),
        MailingList('owner', 'description'),
        MailingList('borrow', 'description'),
    ]
    assert [x.name for x in sorted(mls)] == ['borrow', 'closure', 'deref', 'owner', 'unit']


def test_save_load_available_lists(tmp_path: pathlib.Path) -> None:
    lfile = os.path.join(tmp_path, 'mailing_lists.json')
    assert patchhub.lists.load_available_lists(lfile) == []
    mls = [MailingList('list-name', 'List Description')]
    patchhub.lists.save_available_lists(mls, lfile)
    with open(lfile, 'r') as fh:
        assert fh.read() == '[{"name": "list-name", "description": "List Description"}]'
    assert patchhub.lists.load_available_lists(lfile) == mls
