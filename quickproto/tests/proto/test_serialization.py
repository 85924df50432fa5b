"""Tests for message serialization"""

import math
import struct
from dataclasses import dataclass

from pytest import approx, raises

from quickproto.proto.serialization import (
    Message,
    SerializationError,
    descriptor_for,
    is_message,
    map_field,
    proto_field,
)
from quickproto.proto.types import Label, ScalarType
from quickproto.proto.wire import MalformedWireData
from sample_messages import Defaults, Flags, MapTest, Scalars

EXAMPLE_BYTES = bytes.fromhex("0a016112060a0178120131" "1a040805100a")


def describe_map_encoding():
    def encodes_example_deterministically(expect):
        msg = MapTest(name="a", properties={"x": "1"}, integer_properties={5: 10})
        expect(msg.encode(deterministic=True)) == EXAMPLE_BYTES

    def round_trips_example(expect):
        msg = MapTest(name="a", properties={"x": "1"}, integer_properties={5: 10})
        recovered = MapTest.decode(msg.encode())
        expect(recovered.name) == "a"
        expect(recovered.properties) == {"x": "1"}
        expect(recovered.integer_properties) == {5: 10}

    def round_trips_many_entries(expect):
        properties = {f"key{i}": "v" * i for i in range(50)}
        integers = {i * 7919 - 100000: -i for i in range(50)}
        msg = MapTest(properties=properties, integer_properties=integers)
        recovered = MapTest.decode(msg.encode())
        expect(recovered) == msg

    def sorts_entries_when_deterministic(expect):
        a = MapTest(properties={"b": "2", "a": "1"})
        b = MapTest(properties={"a": "1", "b": "2"})
        expect(a.encode(deterministic=True)) == b.encode(deterministic=True)
        expect(a.encode()) != b.encode()

    def omits_empty_maps(expect):
        expect(MapTest().encode()) == b""
        expect(MapTest(name="a").encode()) == b"\x0a\x01a"

    def always_writes_zero_key_and_value(expect):
        expect(MapTest(integer_properties={0: 0}).encode()) == b"\x1a\x04\x08\x00\x10\x00"

    def encodes_negative_int32_as_ten_bytes(expect):
        encoded = MapTest(integer_properties={1: -1}).encode()
        expect(encoded) == b"\x1a\x0d\x08\x01\x10" + b"\xff" * 9 + b"\x01"
        expect(MapTest.decode(encoded).integer_properties) == {1: -1}

    def round_trips_other_key_and_value_kinds(expect):
        msg = Flags(by_id={(1 << 64) - 1: True, 0: False}, by_name={"blob": b"\x00\xff"})
        expect(Flags.decode(msg.encode())) == msg


def describe_map_decoding():
    def decodes_absent_field_as_empty(expect):
        msg = MapTest.decode(b"\x0a\x01a")
        expect(msg.properties) == {}
        expect(msg.integer_properties) == {}

    def keeps_last_duplicate_key(expect):
        data = b"\x1a\x04\x08\x05\x10\x0a" + b"\x1a\x04\x08\x05\x10\x14"
        expect(MapTest.decode(data).integer_properties) == {5: 20}

    def defaults_missing_key_and_value(expect):
        expect(MapTest.decode(b"\x1a\x00").integer_properties) == {0: 0}
        expect(MapTest.decode(b"\x12\x03\x0a\x01x").properties) == {"x": ""}
        expect(MapTest.decode(b"\x12\x03\x12\x01y").properties) == {"": "y"}

    def skips_unknown_entry_fields(expect):
        data = b"\x1a\x06\x08\x05\x10\x0a\x18\x01"
        expect(MapTest.decode(data).integer_properties) == {5: 10}

    def merges_into_existing_map(expect):
        msg = MapTest(properties={"a": "1", "b": "2"})
        msg.merge_from_bytes(MapTest(properties={"b": "3"}).encode())
        expect(msg.properties) == {"a": "1", "b": "3"}

    def allocates_map_that_was_set_to_none(expect):
        msg = MapTest(properties=None)
        msg.merge_from_bytes(b"\x12\x06\x0a\x01x\x12\x011")
        expect(msg.properties) == {"x": "1"}


def describe_malformed_data():
    def rejects_map_entry_with_wrong_wire_type(expect):
        with raises(MalformedWireData):
            MapTest.decode(b"\x18\x01")

    def rejects_key_of_wrong_kind(expect):
        with raises(MalformedWireData):
            MapTest.decode(b"\x1a\x03\x0a\x01a")

    def rejects_truncated_entry(expect):
        with raises(MalformedWireData):
            MapTest.decode(b"\x1a\x05\x08")

    def rejects_truncated_sub_field(expect):
        with raises(MalformedWireData):
            MapTest.decode(b"\x12\x02\x0a\x05")

    def rejects_invalid_utf8(expect):
        with raises(MalformedWireData):
            MapTest.decode(b"\x0a\x01\xff")

    def leaves_partial_state(expect):
        msg = MapTest()
        with raises(MalformedWireData):
            msg.merge_from_bytes(b"\x0a\x01a\x1a\x05\x08")
        expect(msg.name) == "a"


def describe_scalars():
    def writes_required_fields_even_when_zero(expect):
        expect(Scalars().encode()) == b"\x70\x00"
        expect(Scalars(s32=-1).encode()) == b"\x28\x01\x70\x00"

    def round_trips_all_kinds(expect):
        msg = Scalars(
            d=-2.5,
            f=1.5,
            i64=-(1 << 40),
            u32=(1 << 32) - 1,
            s32=-123,
            s64=-(1 << 62),
            fx32=0xDEADBEEF,
            sfx64=-7,
            flag=True,
            data=b"\x00\x01",
            ids=[1, -2, 3],
            packed_ids=[1, 300, (1 << 64) - 1],
            tags=["a", "", "c"],
            code=42,
        )
        recovered = Scalars.decode(msg.encode())
        expect(recovered) == msg
        expect(recovered.f) == approx(1.5)

    def writes_repeated_fields_one_entry_each(expect):
        expect(Scalars(ids=[1, 2]).encode()) == b"\x58\x01\x58\x02\x70\x00"

    def writes_packed_fields_as_one_entry(expect):
        expect(Scalars(packed_ids=[1, 300]).encode()) == b"\x62\x03\x01\xac\x02\x70\x00"

    def accepts_packed_and_unpacked_forms(expect):
        expect(Scalars.decode(b"\x5a\x02\x01\x02").ids) == [1, 2]
        expect(Scalars.decode(b"\x60\x05\x60\x06").packed_ids) == [5, 6]

    def skips_unknown_fields(expect):
        expect(Scalars.decode(b"\x78\x07\x70\x09").code) == 9

    def rejects_wrong_wire_type_for_scalar(expect):
        with raises(MalformedWireData):
            Scalars.decode(b"\x3a\x03\x01\x02\x03")

    def keeps_negative_zero(expect):
        encoded = Scalars(d=-0.0).encode()
        expect(encoded) == b"\x09" + struct.pack("<d", -0.0) + b"\x70\x00"
        expect(math.copysign(1.0, Scalars.decode(encoded).d)) == -1.0


def describe_declared_defaults():
    def start_at_declared_defaults(expect):
        msg = Defaults()
        expect((msg.count, msg.label)) == (5, "x")
        expect(msg.encode()) == b""

    def write_zero_when_it_differs_from_the_default(expect):
        encoded = Defaults(count=0, label="").encode()
        expect(encoded) == b"\x08\x00\x12\x00"
        expect(Defaults.decode(encoded)) == Defaults(count=0, label="")

    def fill_absent_fields_with_defaults(expect):
        expect(Defaults.decode(b"").count) == 5

    def compare_float_defaults_by_sign(expect):
        expect(Defaults().encode()) == b""
        encoded = Defaults(ratio=0.0).encode()
        expect(encoded) == b"\x19" + bytes(8)
        expect(math.copysign(1.0, Defaults.decode(encoded).ratio)) == 1.0

    def reset_restores_defaults(expect):
        msg = Defaults(count=1, label="y")
        msg.reset()
        expect(msg) == Defaults()


def describe_encode_errors():
    def rejects_wrong_python_type(expect):
        with raises(SerializationError) as exinfo:
            MapTest(properties={"x": 1}).encode()
        expect(str(exinfo.value)).includes("test.MapTest.properties")

    def rejects_out_of_range_int32(expect):
        with raises(SerializationError):
            MapTest(integer_properties={1: 1 << 31}).encode()

    def rejects_negative_unsigned(expect):
        with raises(SerializationError):
            Scalars(u32=-1).encode()

    def rejects_unset_required_field(expect):
        with raises(SerializationError):
            Scalars(code=None).encode()

    def rejects_float_map_keys(expect):
        with raises(SerializationError):
            map_field(number=1, key="double", value="int32")

    def rejects_unknown_scalar_type(expect):
        with raises(SerializationError):
            proto_field("int128", number=1)

    def rejects_duplicate_field_numbers(expect):
        @dataclass
        class Broken(Message):
            a: int = proto_field("int32", number=1)
            b: int = proto_field("int32", number=1)

        with raises(SerializationError):
            Broken.descriptor()

    def rejects_non_dataclass(expect):
        class NotADataclass(Message):
            pass

        with raises(SerializationError):
            NotADataclass.descriptor()


def describe_message_lifecycle():
    def starts_zero_valued(expect):
        msg = MapTest()
        expect(msg.name) == ""
        expect(msg.properties) == {}
        expect(msg.integer_properties) == {}

    def does_not_share_maps_between_instances(expect):
        a = MapTest()
        a.properties["k"] = "v"
        expect(MapTest().properties) == {}

    def resets_to_zero_value(expect):
        msg = MapTest(name="a", properties={"x": "1"}, integer_properties={5: 10})
        msg.reset()
        expect(msg) == MapTest()

    def reset_is_idempotent(expect):
        msg = MapTest(name="a", properties={"x": "1"})
        msg.reset()
        once = repr(msg)
        msg.reset()
        expect(repr(msg)) == once
        expect(msg) == MapTest()

    def renders_populated_fields(expect):
        msg = MapTest(name="a", properties={"y": "2", "x": "1"}, integer_properties={5: 10})
        expect(str(msg)) == (
            'name: "a" properties { key: "x" value: "1" } '
            'properties { key: "y" value: "2" } '
            "integer_properties { key: 5 value: 10 }"
        )

    def renders_empty_message(expect):
        expect(str(MapTest())) == ""
        expect(str(Scalars())) == "code: 0"

    def renders_escaped_values(expect):
        msg = Scalars(flag=True, data=b'\x00"', tags=["a\nb"], code=1)
        expect(str(msg)) == 'flag: true data: "\\000\\"" tags: "a\\nb" code: 1'

    def is_a_message(expect):
        expect(is_message(MapTest())) == True
        expect(is_message(MapTest)) == True
        expect(is_message(object())) == False


def describe_descriptor():
    def lists_fields_by_number(expect):
        desc = descriptor_for(MapTest)
        expect(desc.name) == "test.MapTest"
        expect([f.number for f in desc.fields]) == [1, 2, 3]

    def reports_map_fields(expect):
        field = MapTest.descriptor().field_by_name("integer_properties")
        expect(field.is_map) == True
        expect(field.key_type) == ScalarType.INT32
        expect(field.value_type) == ScalarType.INT32
        expect(field.label) == Label.REPEATED

    def falls_back_to_class_name(expect):
        expect(Flags.descriptor().name) == "Flags"

    def finds_fields_by_number(expect):
        expect(Scalars.descriptor().field_by_number(12).packed) == True
        expect(Scalars.descriptor().field_by_number(99)) == None
