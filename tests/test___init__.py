import pytest
import patchhub
import os
import pathlib

from typing import Optional


def _mkpatch(title: str) -> patchhub.Patch:
    return patchhub.Patch(title=title, author=patchhub.Author('Foo Bar', 'foo@bar.foo.bar'),
                          message_id='http://lore.kernel.org/some-list/1234-1-foo@bar.foo.bar/')


@pytest.mark.parametrize('title,expected', [
    ('[PATCH 0/42] hitchhiker/guide: Complete Collection',
     ('hitchhiker/guide: Complete Collection', 1, 0, 42)),
    ('[RESEND][v7 PATCH 3/42] hitchhiker/guide: Life, the Universe and Everything',
     ('[RESEND] hitchhiker/guide: Life, the Universe and Everything', 7, 3, 42)),
    ('[PATCH] hitchhiker/guide: Don\'t panic',
     ('hitchhiker/guide: Don\'t panic', 1, 1, 1)),
    ('[RFC PATCH v3 2/5] mm: Rework the thing',
     ('mm: Rework the thing', 3, 2, 5)),
    ('[rfc v2] mm: lowercase tags count too',
     ('mm: lowercase tags count too', 2, 1, 1)),
    ('[PATCH V 4 01 / 10] net: spaces everywhere',
     ('net: spaces everywhere', 4, 1, 10)),
    ('[GIT PULL] not a patch at all',
     ('[GIT PULL] not a patch at all', 1, 1, 1)),
    ('no tag whatsoever',
     ('no tag whatsoever', 1, 1, 1)),
])
def test_update_metadata(title: str, expected: tuple) -> None:
    patch = _mkpatch(title)
    patchhub.update_metadata(patch, patchhub.PatchRegex())
    assert (patch.title, patch.version, patch.number_in_series, patch.total_in_series) == expected


@pytest.mark.parametrize('title', [
    '[PATCH 0/42] hitchhiker/guide: Complete Collection',
    '[RESEND][v7 PATCH 3/42] hitchhiker/guide: Life, the Universe and Everything',
    '[PATCH net-next v2] net: Something',
])
def test_update_metadata_idempotent(title: str) -> None:
    patterns = patchhub.PatchRegex()
    patch = _mkpatch(title)
    patchhub.update_metadata(patch, patterns)
    once = patch.to_dict()
    patchhub.update_metadata(patch, patterns)
    assert patch.to_dict() == once


def test_update_metadata_keeps_prior_values() -> None:
    patch = _mkpatch('[PATCH] foo: bar')
    patch.version = 5
    patch.number_in_series = 2
    patch.total_in_series = 3
    patchhub.update_metadata(patch, patchhub.PatchRegex())
    assert patch.title == 'foo: bar'
    assert (patch.version, patch.number_in_series, patch.total_in_series) == (5, 2, 3)


def test_patch_dict_defaults() -> None:
    patch = patchhub.Patch.from_dict({
        'title': 'foo: bar',
        'author': {'name': 'Foo Bar', 'email': 'foo@bar.foo.bar'},
        'message_id': 'http://lore.kernel.org/some-list/x/',
        'updated': '2024-07-06T19:15:48Z',
    })
    assert (patch.version, patch.number_in_series, patch.total_in_series) == (1, 1, 1)
    assert patch.in_reply_to is None
    assert str(patch.author) == 'Foo Bar <foo@bar.foo.bar>'
    assert patchhub.Patch.from_dict(patch.to_dict()) == patch


def test_split_error_messages() -> None:
    assert str(patchhub.PathNotFound('invalid/path')) == "invalid/path: Path doesn't exist"
    assert str(patchhub.NotAFile('some/dir')) == 'some/dir: Not a file'
    assert isinstance(patchhub.NotAFile('x'), patchhub.SplitError)


@pytest.mark.parametrize('envvar,cfgkey,value', [
    ('PATCH_HUB_PAGE_SIZE', 'page-size', '50'),
    ('PATCH_HUB_LORE_URL', 'lore-url', 'https://lore.example.org'),
    ('PATCH_HUB_DATA_DIR', 'data-dir', '/tmp/patch-hub-data'),
])
def test_env_overrides(monkeypatch: pytest.MonkeyPatch, envvar: str, cfgkey: str, value: str) -> None:
    monkeypatch.setattr(patchhub, 'get_config_from_git', lambda regexp, defaults=None: defaults)
    monkeypatch.setenv(envvar, value)
    patchhub.MAIN_CONFIG = None
    config = patchhub.get_main_config()
    assert config[cfgkey] == value
    patchhub.MAIN_CONFIG = None


@pytest.mark.parametrize('value,expected', [
    ('45', 45),
    ('bogus', 30),
    (None, 30),
])
def test_get_config_int(value: Optional[str], expected: int) -> None:
    assert patchhub.get_config_int({'page-size': value}, 'page-size') == expected


def test_save_load_json(tmp_path: pathlib.Path) -> None:
    dest = os.path.join(tmp_path, 'sub', 'data.json')
    patchhub.save_json([{'name': 'netdev'}], dest)
    assert not os.path.exists(f'{dest}.tmp')
    assert patchhub.load_json(dest) == [{'name': 'netdev'}]


def test_data_dirs(tmp_path: pathlib.Path) -> None:
    assert patchhub.get_data_dir() == os.path.join(tmp_path, 'patch-hub')
    assert patchhub.get_patchsets_dir() == os.path.join(tmp_path, 'patch-hub', 'patchsets')
    patchhub.MAIN_CONFIG['data-dir'] = os.path.join(tmp_path, 'elsewhere')
    assert patchhub.get_data_file('x.json') == os.path.join(tmp_path, 'elsewhere', 'x.json')
