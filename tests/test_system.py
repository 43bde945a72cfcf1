import pytest

from packagetester.core import TestRunError
from packagetester.servicedeployer import ServiceContext, VariantsFile
from packagetester.system import (
    SystemTestConfig,
    apply_context,
    create_test_run_id,
    data_stream_index,
    filter_agents,
    list_config_files,
    load_system_config,
    select_variants,
    wait_until_true,
)


def _ctxt():
    ctxt = ServiceContext(name="apache", hostname="svc-host", ports=[8080, 9090], port=8080)
    ctxt.logs.folder.agent = "/tmp/service_logs"
    ctxt.test.run_id = "12345"
    return ctxt


def test_name_from_pattern():
    assert SystemTestConfig(path="a/b/test-default-config.yml").name() == "default"


def test_name_with_variant():
    cfg = SystemTestConfig(path="test-default-config.yml", service_variant_name="v2")
    assert cfg.name() == "default (variant: v2)"


def test_name_without_pattern_is_basename():
    assert SystemTestConfig(path="dir/other.yml").name() == "other.yml"


def test_apply_context_fields_and_aliases():
    out = apply_context("{{ Hostname }}:{{Port}} {{SERVICE_LOGS_DIR}} {{TEST_RUN_ID}}", _ctxt())
    assert out == "svc-host:8080 /tmp/service_logs 12345"


def test_apply_context_custom_property_and_missing():
    ctxt = _ctxt()
    ctxt.custom_properties["QUEUE_URL"] = "q1"
    assert apply_context("{{QUEUE_URL}}|{{Nothing}}", ctxt) == "q1|"


def test_apply_context_escapes_html_unless_triple():
    ctxt = _ctxt()
    ctxt.hostname = "a<b"
    assert apply_context("{{Hostname}} {{{Hostname}}}", ctxt) == "a&lt;b a<b"


def test_apply_context_accepts_bytes_and_comments():
    assert apply_context(b"x{{! note }}{{Name}}", _ctxt()) == "xapache"


def test_apply_context_rejects_blocks():
    with pytest.raises(TestRunError):
        apply_context("{{#if Name}}x{{/if}}", _ctxt())


def test_load_system_config(tmp_path):
    path = tmp_path / "test-default-config.yml"
    path.write_text(
        "input: logfile\n"
        "service: web\n"
        "vars:\n  hosts: http://{{Hostname}}:{{Port}}\n"
        "data_stream:\n  vars:\n    paths: [a.log]\n"
        "numeric_keyword_fields: [x.y]\n"
    )
    cfg = load_system_config(str(path), _ctxt(), "v1")
    assert cfg.input == "logfile"
    assert cfg.service == "web"
    assert cfg.vars == {"hosts": "http://svc-host:8080"}
    assert cfg.data_stream_vars == {"paths": ["a.log"]}
    assert cfg.numeric_keyword_fields == ["x.y"]
    assert cfg.skip is None
    assert cfg.name() == "default (variant: v1)"


def test_load_system_config_skip(tmp_path):
    path = tmp_path / "test-x-config.yml"
    path.write_text("skip.reason: broken\nskip.url: https://example.com/issue\n")
    cfg = load_system_config(str(path), _ctxt())
    assert cfg.skip.reason == "broken"
    assert cfg.skip.link == "https://example.com/issue"


def test_load_system_config_missing(tmp_path):
    with pytest.raises(TestRunError, match="unable to find"):
        load_system_config(str(tmp_path / "nope.yml"), _ctxt())


def test_list_config_files(tmp_path):
    (tmp_path / "test-b-config.yml").write_text("")
    (tmp_path / "test-a-config.yml").write_text("")
    (tmp_path / "config.yml").write_text("")
    (tmp_path / "test-dir-config.yml").mkdir()
    assert list_config_files(str(tmp_path)) == ["test-a-config.yml", "test-b-config.yml"]


def test_create_test_run_id_range():
    for _ in range(50):
        value = int(create_test_run_id())
        assert 10000 <= value < 99999


def test_filter_agents_by_revision_and_prefix():
    ctxt = ServiceContext()
    ctxt.agent.host.name_prefix = "docker-fleet-agent"
    good = {"policy_revision": 2, "local_metadata": {"host": {"name": "docker-fleet-agent-1"}}}
    no_rev = {"policy_revision": 0, "local_metadata": {"host": {"name": "docker-fleet-agent-2"}}}
    other = {"policy_revision": 1, "local_metadata": {"host": {"name": "kind-control-plane"}}}
    assert filter_agents([good, no_rev, other], ctxt) == [good]
    assert filter_agents([good, no_rev, other], ServiceContext()) == [good, other]


def test_wait_until_true_succeeds():
    calls = []

    def fn():
        calls.append(1)
        return len(calls) == 3

    assert wait_until_true(fn, timeout=5, interval=0) is True
    assert len(calls) == 3


def test_wait_until_true_times_out():
    assert wait_until_true(lambda: False, timeout=0.05, interval=0.01) is False


def test_wait_until_true_propagates_errors():
    def fn():
        raise TestRunError("boom")

    with pytest.raises(TestRunError, match="boom"):
        wait_until_true(fn, timeout=5, interval=0)


def test_select_variants():
    assert select_variants(None) == [""]
    assert select_variants(VariantsFile(default="a")) == [""]
    vf = VariantsFile(default="a", variants={"a": {}, "b": {}})
    assert select_variants(vf) == ["a", "b"]
    assert select_variants(vf, "b") == ["b"]
    assert select_variants(vf, "c") == []


def test_data_stream_index():
    streams = [{"input": "logfile"}, {"input": "httpjson"}]
    assert data_stream_index("httpjson", streams) == 1
    assert data_stream_index("missing", streams) == 0