import json
import sys

import pytest

from hosetool.server_config import (
    ConfigError,
    ServerGroup,
    ServerInfo,
    ServerList,
    get_app_config,
    get_config_file_path,
    load_message_templates,
    load_server_path,
    load_startup_config,
    parse_server_config,
    save_message_templates,
    save_server_path,
    save_startup_config,
)

SAMPLE_XML = """<?xml version="1.0" encoding="utf-8"?>
<config>
  <servers>
    <group name="gate">
      <server id="gate_1" name="Gate &amp; One" front_tcp_port="7001" front_ws_port="7002"/>
      <server id="gate_2" back_tcp_port="8001"></server>
    </group>
    <group name="game">
      <server id="game_1" name="Game"/>
    </group>
  </servers>
  <server id="stray"/>
  <group name="outside"><server id="x"/></group>
</config>
"""


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOSETOOL_HOME", str(tmp_path))
    return tmp_path


def write_xml(directory, text, name="config.xml"):
    (directory / name).write_text(text, encoding="utf-8")


def test_parse_groups_and_servers(tmp_path):
    write_xml(tmp_path, SAMPLE_XML)
    result = parse_server_config(str(tmp_path))
    assert [g.name for g in result.servers] == ["gate", "game"]
    assert all(g.id == g.name and g.kind == "group" for g in result.servers)
    gate = result.servers[0]
    assert [s.id for s in gate.children] == ["gate_1", "gate_2"]
    assert gate.children[0].name == "Gate & One"
    assert gate.children[0].front_tcp_port == 7001
    assert gate.children[0].front_ws_port == 7002
    assert gate.children[1].back_tcp_port == 8001
    assert all(s.kind == "server" for s in gate.children)


def test_parse_custom_file_name(tmp_path):
    write_xml(tmp_path, SAMPLE_XML, name="other.xml")
    result = parse_server_config(tmp_path, "other.xml")
    assert [s.id for s in result.servers[1].children] == ["game_1"]


def test_to_dict_omits_unset_fields(tmp_path):
    write_xml(tmp_path, SAMPLE_XML)
    result = parse_server_config(tmp_path)
    data = result.to_dict()
    gate_2 = data["servers"][0]["children"][1]
    assert gate_2 == {"id": "gate_2", "back_tcp_port": 8001, "type": "server"}
    assert data["servers"][1]["type"] == "group"


def test_dataclass_to_dict_round_shape():
    server = ServerInfo(id="a", name="A", front_ws_port=1)
    group = ServerGroup(id="g", name="g", children=[server])
    assert ServerList([group]).to_dict() == {
        "servers": [
            {
                "id": "g",
                "name": "g",
                "type": "group",
                "children": [{"id": "a", "name": "A", "front_ws_port": 1, "type": "server"}],
            }
        ]
    }


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError):
        parse_server_config(tmp_path)


def test_malformed_xml(tmp_path):
    write_xml(tmp_path, "<servers><group name='a'></servers>")
    with pytest.raises(ConfigError):
        parse_server_config(tmp_path)


def test_empty_file_gives_no_groups(tmp_path):
    write_xml(tmp_path, "")
    assert parse_server_config(tmp_path).servers == []


@pytest.mark.parametrize("port", ["70000", "-1", "abc", " 80", ""])
def test_bad_port_rejected(tmp_path, port):
    write_xml(tmp_path, f'<servers><group name="g"><server id="s" back_tcp_port="{port}"/></group></servers>')
    with pytest.raises(ConfigError):
        parse_server_config(tmp_path)


def test_plus_sign_port_accepted(tmp_path):
    write_xml(tmp_path, '<servers><group name="g"><server id="s" front_tcp_port="+80"/></group></servers>')
    assert parse_server_config(tmp_path).servers[0].children[0].front_tcp_port == 80


def test_config_path_from_env(home):
    assert get_config_file_path() == home / "app_config.json"


def test_config_path_next_to_program(tmp_path, monkeypatch):
    monkeypatch.delenv("HOSETOOL_HOME", raising=False)
    program = tmp_path / "tool.py"
    monkeypatch.setattr(sys, "argv", [str(program)])
    assert get_config_file_path() == program.resolve().parent / "app_config.json"


def test_defaults_when_missing(home):
    assert load_server_path() is None
    assert load_startup_config() == (None, None, None)
    assert get_app_config() == {}
    assert load_message_templates("gate") == []


def test_server_path_round_trip(home):
    save_server_path("/srv/game")
    assert load_server_path() == "/srv/game"
    assert (home / "app_config.json").read_text(encoding="utf-8") == '{"server_path":"/srv/game"}'


def test_startup_config_round_trip_keeps_proto(home):
    save_startup_config("config.xml", "server.exe", "../proto")
    assert load_startup_config() == ("config.xml", "server.exe", "../proto")
    save_startup_config("b.xml", "srv", None)
    assert load_startup_config() == ("b.xml", "srv", "../proto")


def test_saves_preserve_other_keys(home):
    save_server_path("/srv")
    save_startup_config("c.xml", "e", None)
    config = get_app_config()
    assert config["server_path"] == "/srv"
    assert config["config_file_name"] == "c.xml"
    assert config["executable_name"] == "e"


def test_corrupt_file_errors_on_load_but_save_recovers(home):
    (home / "app_config.json").write_text("not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_server_path()
    with pytest.raises(ConfigError):
        get_app_config()
    with pytest.raises(ConfigError):
        load_message_templates("gate")
    save_server_path("x")
    assert get_app_config() == {"server_path": "x"}


def test_non_string_server_path_is_none(home):
    (home / "app_config.json").write_text('{"server_path": 5}', encoding="utf-8")
    assert load_server_path() is None


def test_message_templates_round_trip(home):
    templates = [{"name": "login", "msg_id": 1}]
    save_message_templates("gate", templates)
    assert load_message_templates("gate") == templates
    assert load_message_templates("game") == []
    text = (home / "app_config.json").read_text(encoding="utf-8")
    assert "\n" in text
    assert json.loads(text)["msg_template"]["gate"] == templates


def test_message_templates_replace_non_object(home):
    (home / "app_config.json").write_text('{"msg_template": 5, "keep": true}', encoding="utf-8")
    save_message_templates("gate", ["a"])
    config = get_app_config()
    assert config["msg_template"] == {"gate": ["a"]}
    assert config["keep"] is True


def test_null_templates_give_empty_list(home):
    (home / "app_config.json").write_text('{"msg_template": {"gate": null}}', encoding="utf-8")
    assert load_message_templates("gate") == []