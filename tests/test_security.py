"""Security context: pre-flight actions, field encryption and the event sink."""

import json
import logging

import pytest

from syft_serde import (
    ENCRYPTION_MARKER,
    JSON,
    YAML,
    Abort,
    Continue,
    CryptoError,
    DecodeError,
    Direction,
    FernetCipher,
    JSONCodec,
    ListEventSink,
    ScopedSerializer,
    SecurityActionError,
    SecurityActions,
    SecurityContext,
    ValidationError,
    marshal_with_context,
    unmarshal_with_context,
)

from .conftest import Cat, Dog, Kennel, Owner, Patient, User, Ward

ORG_KEY = "org-master-key"


def medical_context(**kwargs) -> SecurityContext:
    kwargs.setdefault("permissions", {"medical"})
    kwargs.setdefault("org_master_key", ORG_KEY)
    return SecurityContext(**kwargs)


# --- security actions ---


def test_abort_stops_marshal(user):
    actions = SecurityActions()
    actions.register(lambda value, direction, ctx: Abort("outside business hours"), name="hours")
    ctx = SecurityContext(permissions={"admin"}, actions=actions)

    with pytest.raises(SecurityActionError, match="hours") as exc_info:
        JSON.marshal_with_context(user, ctx)
    assert exc_info.value.action == "hours"
    assert exc_info.value.reason == "outside business hours"


def test_actions_run_in_order_until_abort(user):
    calls = []

    def allow(value, direction, ctx):
        calls.append("allow")
        return Continue()

    def deny(value, direction, ctx):
        calls.append("deny")
        return Abort("denied")

    def never(value, direction, ctx):
        calls.append("never")
        return Continue()

    actions = SecurityActions()
    for action in (allow, deny, never):
        actions.register(action)

    with pytest.raises(SecurityActionError):
        JSON.marshal_with_context(user, SecurityContext(actions=actions))
    assert calls == ["allow", "deny"]


def test_raising_action_aborts(user):
    def region_check(value, direction, ctx):
        raise RuntimeError(f"region {ctx.region} is blocked")

    actions = SecurityActions()
    actions.register(region_check)
    ctx = SecurityContext(region="eu-west", actions=actions)

    with pytest.raises(SecurityActionError, match="region eu-west is blocked") as exc_info:
        JSON.marshal_with_context(user, ctx)
    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_action_must_return_a_result(user):
    actions = SecurityActions()
    actions.register(lambda value, direction, ctx: None, name="sloppy")

    with pytest.raises(SecurityActionError, match="expected Continue or Abort"):
        JSON.marshal_with_context(user, SecurityContext(actions=actions))


def test_actions_filtered_by_direction_and_type(user):
    calls = []

    def record(tag):
        def action(value, direction, ctx):
            calls.append(tag)
            return Continue()

        return action

    actions = SecurityActions()
    actions.register(record("unmarshal-only"), direction="unmarshal")
    actions.register(record("patients-only"), model_type=Patient)
    actions.register(record("users-marshal"), model_type=User, direction=Direction.MARSHAL)
    actions.register(record("everything"))

    JSON.marshal_with_context(user, SecurityContext(actions=actions))
    assert calls == ["users-marshal", "everything"]


def test_unmarshal_action_receives_model_type():
    seen = []

    def check(value, direction, ctx):
        seen.append((value, direction, ctx.user_id))
        return Continue()

    actions = SecurityActions()
    actions.register(check)
    ctx = SecurityContext(user_id="u-1", actions=actions)

    JSON.unmarshal_with_context(b'{"id": 1}', User, ctx)
    assert seen == [(User, Direction.UNMARSHAL, "u-1")]


def test_abort_stops_unmarshal_before_decoding():
    actions = SecurityActions()
    actions.register(lambda value, direction, ctx: Abort("no writes"))

    with pytest.raises(SecurityActionError):
        JSON.unmarshal_with_context(b"{nope", User, SecurityContext(actions=actions))


def test_register_returns_the_action():
    actions = SecurityActions()

    def check(value, direction, ctx):
        return Continue()

    assert actions.register(check) is check
    assert len(actions) == 1


# --- encryption ---


def test_encrypted_field_round_trip(patient):
    ctx = medical_context()
    data = JSON.marshal_with_context(patient, ctx)
    doc = json.loads(data)

    assert doc[ENCRYPTION_MARKER] == ["diagnosis"]
    assert doc["diagnosis"] != "influenza"
    assert b"influenza" not in data
    assert doc["notes"] is None
    assert JSON.unmarshal_with_context(data, Patient, ctx) == patient


def test_both_encrypted_fields(patient):
    patient = patient.model_copy(update={"notes": "follow up in 2 weeks"})
    ctx = medical_context()
    doc = json.loads(JSON.marshal_with_context(patient, ctx))
    assert doc[ENCRYPTION_MARKER] == ["diagnosis", "notes"]
    assert JSON.unmarshal_with_context(json.dumps(doc), Patient, ctx) == patient


def test_wrong_key_cannot_decrypt(patient):
    data = JSON.marshal_with_context(patient, medical_context())
    with pytest.raises(CryptoError):
        JSON.unmarshal_with_context(data, Patient, medical_context(org_master_key="other"))


def test_encryption_without_key_fails(patient):
    with pytest.raises(CryptoError, match="no key"):
        JSON.marshal_with_context(patient, medical_context(org_master_key=None))


def test_hidden_encrypted_field_needs_no_key(patient):
    ctx = SecurityContext(permissions=set())
    doc = json.loads(JSON.marshal_with_context(patient, ctx))
    assert doc == {"id": 1, "notes": None}


def test_plain_path_does_not_encrypt(patient):
    doc = json.loads(JSON.marshal(patient, ["medical"]))
    assert doc["diagnosis"] == "influenza"
    assert ENCRYPTION_MARKER not in doc


def test_encrypted_field_still_scoped_on_unmarshal(patient):
    data = JSON.marshal_with_context(patient, medical_context())
    restored = JSON.unmarshal_with_context(data, Patient, medical_context(permissions=set()))
    assert restored.diagnosis == ""


def test_serializer_default_key(patient):
    serializer = ScopedSerializer(JSONCodec(), default_key=ORG_KEY)
    ctx = SecurityContext(permissions={"medical"})
    data = serializer.marshal_with_context(patient, ctx)
    assert json.loads(data)[ENCRYPTION_MARKER] == ["diagnosis"]
    assert serializer.unmarshal_with_context(data, Patient, ctx) == patient


def test_context_key_overrides_default_key(patient):
    serializer = ScopedSerializer(JSONCodec(), default_key="unused-default")
    data = serializer.marshal_with_context(patient, medical_context())
    assert JSON.unmarshal_with_context(data, Patient, medical_context()) == patient


def test_nested_encryption(patient):
    ward = Ward(name="east", patients=[patient, Patient(id=2, diagnosis="asthma")])
    ctx = medical_context()
    doc = json.loads(JSON.marshal_with_context(ward, ctx))
    assert ENCRYPTION_MARKER not in doc
    assert [p[ENCRYPTION_MARKER] for p in doc["patients"]] == [["diagnosis"], ["diagnosis"]]
    assert JSON.unmarshal_with_context(json.dumps(doc), Ward, ctx) == ward


def test_union_member_encryption_round_trip():
    owner = Owner(
        name="sam",
        pet=Cat(tag="t", secret="meow"),
        pets=[Dog(tag="rex", bark="woof"), Cat(tag="c", secret="purr")],
    )
    ctx = medical_context()
    data = JSON.marshal_with_context(owner, ctx)
    doc = json.loads(data)

    assert doc["pet"][ENCRYPTION_MARKER] == ["secret"]
    assert b"meow" not in data
    assert b"purr" not in data
    restored = JSON.unmarshal_with_context(data, Owner, ctx)
    assert restored.pet.secret == "meow"
    assert restored.pets[1].secret == "purr"
    assert restored == owner


def test_discriminated_union_encryption_round_trip():
    ctx = medical_context()
    for pet in (Cat(tag="t", secret="meow"), Dog(tag="rex", bark="woof")):
        kennel = Kennel(pet=pet)
        data = YAML.marshal_with_context(kennel, ctx)
        assert YAML.unmarshal_with_context(data, Kennel, ctx) == kennel


def test_encrypted_union_item_matching_no_member_rejected():
    pet = {"kind": "cat", "secret": "x", "claws": 1, ENCRYPTION_MARKER: ["secret"]}
    data = json.dumps({"pet": pet})
    with pytest.raises(CryptoError, match="no member"):
        JSON.unmarshal_with_context(data, Owner, medical_context())


def test_yaml_encryption_round_trip(patient):
    ctx = medical_context()
    data = YAML.marshal_with_context(patient, ctx)
    assert YAML.unmarshal_with_context(data, Patient, ctx) == patient


def test_marker_on_plain_field_rejected():
    data = json.dumps({"id": 1, ENCRYPTION_MARKER: ["id"]})
    with pytest.raises(CryptoError, match="not encryptable"):
        JSON.unmarshal_with_context(data, Patient, medical_context())


def test_malformed_marker_rejected():
    data = json.dumps({"id": 1, ENCRYPTION_MARKER: "diagnosis"})
    with pytest.raises(CryptoError, match="Malformed"):
        JSON.unmarshal_with_context(data, Patient, medical_context())


def test_module_level_context_functions(patient):
    ctx = medical_context()
    data = marshal_with_context(patient, ctx)
    assert unmarshal_with_context(data, Patient, ctx) == patient


def test_fernet_cipher():
    cipher = FernetCipher(b"raw key material of any length")
    token = cipher.encrypt(b"payload")
    assert cipher.decrypt(token) == b"payload"
    with pytest.raises(CryptoError):
        FernetCipher("")
    with pytest.raises(CryptoError):
        cipher.decrypt(b"not-a-token")


def test_context_repr_hides_key():
    ctx = medical_context(user_id="u-1")
    assert ORG_KEY not in repr(ctx)
    assert "u-1" in repr(ctx)
    assert ctx.permissions == frozenset({"medical"})


# --- events ---


def test_events_are_emitted(user):
    sink = ListEventSink()
    serializer = ScopedSerializer(JSONCodec(), event_sink=sink)

    serializer.marshal(user, ["admin", "pii"])
    with pytest.raises(DecodeError):
        serializer.unmarshal(b"{nope", User, [])

    first, second = [e for e in sink.events if e.action in ("marshal", "unmarshal")]
    assert first.action == "marshal"
    assert first.model_type == "User"
    assert first.format == "json"
    assert first.permissions == ("admin", "pii")
    assert first.success and first.error is None
    assert not first.secure
    assert second.action == "unmarshal"
    assert not second.success
    assert "JSON decoding failed" in second.error


def test_secure_events_record_aborts(user):
    sink = ListEventSink()
    serializer = ScopedSerializer(JSONCodec(), event_sink=sink)
    actions = SecurityActions()
    actions.register(lambda value, direction, ctx: Abort("nope"))

    with pytest.raises(SecurityActionError):
        serializer.marshal_with_context(user, SecurityContext(actions=actions))
    assert sink.events[0].secure
    assert not sink.events[0].success


def test_failing_sink_does_not_break_the_call(user, caplog):
    class BrokenSink:
        def emit(self, event):
            raise RuntimeError("sink is down")

    serializer = ScopedSerializer(JSONCodec(), event_sink=BrokenSink())
    with caplog.at_level(logging.WARNING):
        data = serializer.marshal(user, [])
    assert json.loads(data) == {"id": 123}
    assert "sink is down" in caplog.text


def test_field_scope_checks_are_reported(record):
    sink = ListEventSink()
    serializer = ScopedSerializer(JSONCodec(), event_sink=sink)
    serializer.marshal(record, ["admin", "pii"])

    checks = {e.field_name: e.success for e in sink.events if e.action == "scope_check"}
    assert checks == {"id": True, "name": False, "ssn": True, "compliance_id": True}
    assert all(
        e.model_type == "Record" for e in sink.events if e.action == "scope_check"
    )


def test_unmarshal_scope_checks_cover_nested_models(employee):
    sink = ListEventSink()
    serializer = ScopedSerializer(JSONCodec(), event_sink=sink)
    serializer.unmarshal(JSON.marshal(employee, ["pii", "hr"]), type(employee), ["hr"])

    denied = [
        (e.model_type, e.field_name)
        for e in sink.events
        if e.action == "scope_check" and not e.success
    ]
    assert denied == [("Address", "street")] * 3


def test_validation_events(user):
    sink = ListEventSink()
    serializer = ScopedSerializer(JSONCodec(), event_sink=sink)
    serializer.marshal(user, [])
    with pytest.raises(ValidationError):
        serializer.marshal(User.model_construct(id="x"), [])

    validations = [e for e in sink.events if e.action == "validate"]
    assert [e.success for e in validations] == [True, False]
    assert "Validation failed for User" in validations[1].error
