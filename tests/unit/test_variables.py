"""Tests for {{path}} interpolation."""

from nodeflow.variables import resolve, resolve_value


def test_resolve_nested_path():
    data = {"user": {"name": "Ada", "tags": ["a", "b"]}}
    assert resolve("Hello {{user.name}}", data) == "Hello Ada"
    assert resolve("{{ user.tags.1 }}", data) == "b"


def test_resolve_missing_path_is_empty():
    assert resolve("id={{missing.key}}", {"other": 1}) == "id="
    assert resolve("{{user.tags.9}}", {"user": {"tags": []}}) == ""


def test_resolve_renders_values():
    data = {"flag": True, "off": False, "none": None, "obj": {"a": 1}, "n": 42}
    assert resolve("{{flag}}/{{off}}", data) == "true/false"
    assert resolve("[{{none}}]", data) == "[]"
    assert resolve("{{obj}}", data) == '{"a":1}'
    assert resolve("https://x/{{n}}", data) == "https://x/42"


def test_resolve_does_not_rescan_substituted_text():
    data = {"a": "{{b}}", "b": "nope"}
    assert resolve("{{a}}", data) == "{{b}}"


def test_template_without_placeholders_is_unchanged():
    assert resolve("plain {text}", {"text": "x"}) == "plain {text}"


def test_resolve_value_walks_containers():
    config = {
        "url": "https://api/{{id}}",
        "headers": {"X-Id": "{{id}}"},
        "items": ["{{id}}", 3],
        "retries": 2,
    }
    resolved = resolve_value(config, {"id": 7})
    assert resolved == {
        "url": "https://api/7",
        "headers": {"X-Id": "7"},
        "items": ["7", 3],
        "retries": 2,
    }
    # source config is left untouched
    assert config["url"] == "https://api/{{id}}"


def test_negative_index_does_not_count_from_the_end():
    data = {"items": ["first", "last"]}
    assert resolve("{{items.-1}}", data) == ""
    assert resolve("{{items.+1}}", data) == ""
    assert resolve("{{items.1}}", data) == "last"
