import datetime

from normalizer import DEFAULT_JOB_ROLE, extract_call_data, normalize_payload

NOW = datetime.datetime(2026, 1, 15, 12, 0, 0, tzinfo=datetime.timezone.utc)


def test_nested_call_is_preferred_over_flat_payload():
    payload = {"transcript": "outer", "call": {"transcript": "inner", "call_id": "c1"}}
    assert extract_call_data(payload) is payload["call"]
    assert normalize_payload(payload, now=NOW).transcript == "inner"


def test_flat_payload_is_used_when_call_missing():
    call = normalize_payload({"transcript": "flat text", "callId": "c2"}, now=NOW)
    assert call.transcript == "flat text"
    assert call.call_id == "c2"
    assert call.generated_call_id is False


def test_non_mapping_call_field_falls_back_to_payload():
    call = normalize_payload({"call": "c-string", "call_id": "c3"}, now=NOW)
    assert call.call_id == "c3"


def test_transcript_text_fallback_and_empty_default():
    assert normalize_payload({"call": {"transcript_text": "alt"}}, now=NOW).transcript == "alt"
    assert normalize_payload({"call": {}}, now=NOW).transcript == ""


def test_call_id_prefers_snake_case():
    call = normalize_payload({"call": {"call_id": "snake", "callId": "camel"}}, now=NOW)
    assert call.call_id == "snake"


def test_generated_call_id_when_absent():
    call = normalize_payload({"transcript": "hello there"}, now=NOW)
    assert call.call_id == f"call_{int(NOW.timestamp() * 1000)}"
    assert call.generated_call_id is True


def test_job_role_precedence_chain():
    call_data = {
        "jobRole": "Call Role",
        "retell_llm_dynamic_variables": {"job_role": "Dynamic Role"},
        "job_role": "Snake Role",
        "metadata": {"jobRole": "Metadata Role"},
    }
    assert normalize_payload({"jobRole": "Top Role", "call": dict(call_data)}, now=NOW).job_role == "Top Role"

    call_data.pop("jobRole")
    assert normalize_payload({"call": dict(call_data)}, now=NOW).job_role == "Dynamic Role"

    call_data.pop("retell_llm_dynamic_variables")
    assert normalize_payload({"call": dict(call_data)}, now=NOW).job_role == "Snake Role"

    call_data.pop("job_role")
    assert normalize_payload({"call": dict(call_data)}, now=NOW).job_role == "Metadata Role"


def test_job_role_default_is_not_explicit():
    call = normalize_payload({"call": {"call_id": "c"}}, now=NOW)
    assert call.job_role == DEFAULT_JOB_ROLE
    assert call.job_role_explicit is False


def test_blank_values_do_not_win():
    call = normalize_payload({"jobRole": "  ", "call": {"job_role": "Data Engineer", "transcript": ""}}, now=NOW)
    assert call.job_role == "Data Engineer"
    assert call.transcript == ""


def test_user_id_precedence():
    assert normalize_payload({"userId": "top", "call": {"userId": "inner"}}, now=NOW).user_id == "top"
    assert normalize_payload({"call": {"userId": "inner"}}, now=NOW).user_id == "inner"
    assert normalize_payload({"call": {"metadata": {"userId": "meta"}}}, now=NOW).user_id == "meta"
    assert normalize_payload({"call": {}}, now=NOW).user_id is None


def test_duration_precedence():
    assert normalize_payload({"call": {"call_duration": 300, "duration": 10}}, now=NOW).duration == 300
    assert normalize_payload({"call": {"duration": 42}}, now=NOW).duration == 42
    timestamps = {"start_timestamp": 1_700_000_000, "end_timestamp": 1_700_000_125}
    assert normalize_payload({"call": timestamps}, now=NOW).duration == 125
    assert normalize_payload({"call": {"start_timestamp": 1_700_000_000}}, now=NOW).duration == 0
    assert normalize_payload({"call": {"call_duration": "n/a"}}, now=NOW).duration == 0


def test_started_at_from_epoch_seconds_or_now():
    call = normalize_payload({"call": {"start_timestamp": 1_700_000_000}}, now=NOW)
    assert call.started_at == datetime.datetime.fromtimestamp(1_700_000_000, tz=datetime.timezone.utc)
    assert normalize_payload({"call": {}}, now=NOW).started_at == NOW


def test_event_is_carried_through():
    assert normalize_payload({"event": "call_ended", "call": {}}, now=NOW).event == "call_ended"


def test_normalize_is_deterministic():
    payload = {"call": {"call_id": "c9", "transcript": "abc", "call_duration": 5}}
    assert normalize_payload(payload, now=NOW) == normalize_payload(payload, now=NOW)


def test_millisecond_timestamps_are_read_as_millis():
    call = normalize_payload({"call": {"start_timestamp": 1_703_302_407_333}}, now=NOW)
    assert call.started_at == datetime.datetime.fromtimestamp(1_703_302_407.333, tz=datetime.timezone.utc)

    timestamps = {"start_timestamp": 1_703_302_407_000, "end_timestamp": 1_703_302_827_000}
    assert normalize_payload({"call": timestamps}, now=NOW).duration == 420


def test_out_of_range_start_timestamp_falls_back_to_now():
    assert normalize_payload({"call": {"start_timestamp": 1e20}}, now=NOW).started_at == NOW
    assert normalize_payload({"call": {"start_timestamp": -1e20}}, now=NOW).started_at == NOW


def test_non_finite_numbers_are_ignored():
    call = normalize_payload(
        {"call": {"call_duration": "nan", "duration": float("inf"), "start_timestamp": "inf"}},
        now=NOW,
    )
    assert call.duration == 0
    assert call.started_at == NOW


def test_nan_duration_falls_through_to_timestamps():
    call = normalize_payload(
        {"call": {"call_duration": float("nan"), "start_timestamp": 1_700_000_000, "end_timestamp": 1_700_000_060}},
        now=NOW,
    )
    assert call.duration == 60
