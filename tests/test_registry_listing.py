import pytest
from botocore.exceptions import EndpointConnectionError

from watch_core import registry_utils as ru
from watch_core.errors import RegistryError

from fakes import FakeECRClient, at, client_error


def test_only_matching_tags_are_kept(make_config, logger):
    client = FakeECRClient([[
        {'digest': 'sha256:a', 'tags': ['latest'], 'pushed_at': at(100)},
        {'digest': 'sha256:b', 'tags': ['latest-2'], 'pushed_at': at(200)},
        {'digest': 'sha256:c', 'tags': [], 'pushed_at': at(300)},
    ]])
    ids = ru.list_matching_image_ids(client, make_config(r'^latest$'), logger)
    assert ids == [{'imageDigest': 'sha256:a', 'imageTag': 'latest'}]


def test_pattern_uses_search_semantics(make_config, logger):
    client = FakeECRClient([[
        {'digest': 'sha256:a', 'tags': ['staging-abc'], 'pushed_at': at(100)},
        {'digest': 'sha256:b', 'tags': ['prod-staging'], 'pushed_at': at(200)},
        {'digest': 'sha256:c', 'tags': ['prod'], 'pushed_at': at(300)},
    ]])
    ids = ru.list_matching_image_ids(client, make_config('staging'), logger)
    assert [i['imageTag'] for i in ids] == ['staging-abc', 'prod-staging']


def test_untagged_images_never_match(make_config, logger):
    client = FakeECRClient([[
        {'digest': 'sha256:a', 'tags': [], 'pushed_at': at(100)},
        {'digest': 'sha256:b', 'tags': [], 'pushed_at': at(200)},
    ]])
    assert ru.list_matching_image_ids(client, make_config('.*'), logger) == []


def test_pagination_accumulates_each_page_once(make_config, logger):
    images = [
        {'digest': f'sha256:{n}', 'tags': [f'build-{n}'], 'pushed_at': at(n)}
        for n in range(7)
    ]
    client = FakeECRClient([images], page_size=3)
    ids = ru.list_matching_image_ids(client, make_config('^build-'), logger)

    assert [i['imageTag'] for i in ids] == [f'build-{n}' for n in range(7)]
    assert [c.get('nextToken') for c in client.list_calls] == [None, '3', '6']
    assert all(c['repositoryName'] == 'repo' for c in client.list_calls)


def test_registry_id_is_forwarded(make_config, logger):
    client = FakeECRClient([[{'digest': 'sha256:a', 'tags': ['latest'], 'pushed_at': at(1)}]])
    config = make_config(registry_id='111111111111')
    ids = ru.list_matching_image_ids(client, config, logger)
    ru.describe_image_details(client, config, ids)
    assert client.list_calls[0]['registryId'] == '111111111111'
    assert client.describe_calls[0]['registryId'] == '111111111111'


def test_list_error_is_fatal(make_config, logger):
    class FailingClient:
        def list_images(self, **kwargs):
            raise client_error('RepositoryNotFoundException', 'ListImages')

    with pytest.raises(RegistryError) as exc:
        ru.list_matching_image_ids(FailingClient(), make_config(), logger)
    assert exc.value.operation == 'ListImages'
    assert 'RepositoryNotFoundException' in str(exc.value)


def test_error_on_later_page_discards_partial_result(make_config, logger):
    class SecondPageFails:
        def list_images(self, **kwargs):
            if kwargs.get('nextToken'):
                raise EndpointConnectionError(endpoint_url='https://api.ecr.us-east-1.amazonaws.com')
            return {'imageIds': [{'imageDigest': 'sha256:a', 'imageTag': 'latest'}], 'nextToken': 't'}

    with pytest.raises(RegistryError):
        ru.list_matching_image_ids(SecondPageFails(), make_config(), logger)
