import json

import pytest

from descend_viewer.events import RELOAD, EventChannel, decode_event
from descend_viewer.server import create_app


@pytest.fixture
def channel():
    return EventChannel()


@pytest.fixture
def client(options, channel):
    app = create_app(options, channel=channel)
    app.config['TESTING'] = True
    return app.test_client()


def test_tree_endpoint_returns_display_tree(client):
    response = client.get('/tree/main.dt?sentence')

    assert response.status_code == 200
    tree = response.get_json()
    assert tree['label'] == 'sentence'
    assert tree['kind'] == 'rule'
    assert tree['tag'] == 'WORD*\t〈1〉'
    assert [child['label'] for child in tree['children']] == ['hello', 'world']
    assert [child['tag'] for child in tree['children']] == ['〈1.1〉\tWORD*', '〈1.2〉\tWORD*']


def test_tree_endpoint_uses_configured_entry(client):
    tree = client.get('/tree/lib/util.dt').get_json()

    assert tree['label'] == 'program'
    assert tree['children'][0]['tag'] == '〈1〉\tWORD*'


def test_parse_endpoint_returns_syntax_tree(client):
    response = client.get('/parse/main.dt?expr', headers={'Origin': 'http://localhost:1234'})

    assert response.status_code == 200
    assert response.headers['Access-Control-Allow-Origin'] in ('*', 'http://localhost:1234')
    assert response.get_json() == {
        'symbol': 'expr',
        'branches': {
            '1': {
                'reqs': 'WORD*',
                'entries': [[
                    {'symbol': 'WORD', 'value': 'hello'},
                    {'symbol': 'WORD', 'value': 'world'},
                ]],
            },
        },
    }


def test_parse_endpoint_keeps_branch_order(make_program, options):
    options.main = make_program('''
        import json
        print(json.dumps({"symbol": "v", "branches": {
            "9": {"reqs": "b", "entries": []},
            "1": {"reqs": "a", "entries": []},
        }}))
    ''', name='ordered.py')
    client = create_app(options).test_client()

    assert list(json.loads(client.get('/parse/main.dt').data)['branches']) == ['9', '1']
    assert [child['label'] for child in client.get('/tree/main.dt').get_json()['children']] == ['9', '1']


def test_missing_source_file_gives_empty_object(client):
    response = client.get('/tree/missing.dt')

    assert response.status_code == 200
    assert response.get_json() == {}


def test_parser_failure_gives_empty_object(make_program, options):
    options.main = make_program('print("no tree here")\n', name='broken.py')
    client = create_app(options).test_client()

    assert client.get('/parse/main.dt').get_json() == {}
    assert client.get('/tree/main.dt').get_json() == {}


def test_process_error_gives_empty_object(options):
    options.lua = '/nonexistent/lua'
    client = create_app(options).test_client()

    assert client.get('/tree/main.dt').get_json() == {}


def test_files_endpoint(client):
    assert client.get('/files').get_json() == ['lib/util.dt', 'main.dt']


def test_files_endpoint_with_missing_root(options, tmp_path):
    options.root = str(tmp_path / 'missing')
    client = create_app(options).test_client()

    assert client.get('/files').get_json() == []


def test_static_assets(client):
    index = client.get('/')
    script = client.get('/viewer.js')

    assert index.status_code == 200
    assert index.mimetype == 'text/html'
    assert b'viewer.js' in index.data
    assert script.mimetype == 'text/javascript'


def test_missing_asset_is_404_page(client):
    response = client.get('/nothing.css')

    assert response.status_code == 404
    assert response.mimetype == 'text/html'
    assert b'nothing.css' in response.data


def test_event_stream(client, channel):
    response = client.get('/events', buffered=False)
    stream = iter(response.response)

    assert response.mimetype == 'text/event-stream'
    assert next(stream) == b': connected\n\n'
    assert len(channel) == 1

    channel.broadcast(RELOAD)
    assert decode_event(next(stream).decode('ascii')) == (RELOAD, None)

    response.close()
    assert len(channel) == 0
