from features.executions.diagnostics import diagnose, short_id


def test_no_logs():
    assert diagnose(0, 0, "t1", set())[0].startswith("ERROR: no execution_logs")


def test_all_logs_unscoped():
    assert "missing client_id" in diagnose(5, 5, "t1", set())[0]


def test_user_without_client():
    assert "not linked" in diagnose(5, 1, None, {"t1"})[0]


def test_client_mismatch_lists_known_clients():
    findings = diagnose(5, 1, "t9", {"t2", "t1"})
    assert findings[0].startswith("WARN")
    assert "t1, t2" in findings[2]


def test_configuration_ok():
    assert diagnose(5, 0, "t1", {"t1"})[0].startswith("OK")


def test_short_id():
    assert short_id("0123456789abcdef") == "01234567..."
    assert short_id("abc") == "abc"
    assert short_id(None) is None
