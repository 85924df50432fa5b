"""Tests for generated Python code"""

import gzip
import os

from pytest import raises

from quickproto.generator import parse
from quickproto.generator.python import render, runtime
from quickproto.proto.registry import DuplicateTypeRegistration, default_registry
from quickproto.proto.wire import WireType, iter_fields

FILE_DIR = os.path.dirname(os.path.realpath(__file__))


def gen_code(text, file_name="maps.proto"):
    gbl = globals().copy()

    proto = parse(text, file_name=file_name)
    generated_code = render(proto, runtime_import="quickproto.proto")
    exec(generated_code, gbl)
    return gbl


def maps_code():
    with open(f"{FILE_DIR}/../maps.proto", encoding="utf-8") as f:
        return gen_code(f.read())


def describe_generated_messages():
    def round_trips_example(expect):
        MapTest = maps_code()["MapTest"]

        msg = MapTest(name="a", properties={"x": "1"}, integer_properties={5: 10})
        packed = msg.encode(deterministic=True)
        expect(packed) == bytes.fromhex("0a016112060a01781201311a040805100a")

        recovered = MapTest.decode(packed)
        expect(recovered) == msg
        expect(recovered.properties) == {"x": "1"}
        expect(recovered.integer_properties) == {5: 10}

    def constructs_zero_valued(expect):
        MapTest = maps_code()["MapTest"]

        msg = MapTest()
        expect(msg.name) == ""
        expect(msg.properties) == {}
        expect(msg.integer_properties) == {}
        expect(msg.encode()) == b""

    def getters_return_field_values(expect):
        MapTest = maps_code()["MapTest"]

        msg = MapTest(name="n", properties={"k": "v"}, integer_properties={1: 2})
        expect(msg.get_name()) == "n"
        expect(msg.get_properties()) == {"k": "v"}
        expect(msg.get_integer_properties()) == {1: 2}

    def getters_are_safe_on_none(expect):
        MapTest = maps_code()["MapTest"]

        expect(MapTest.get_name(None)) == ""
        expect(MapTest.get_properties(None)) == {}
        expect(MapTest.get_integer_properties(None)) == {}

    def resets_in_place(expect):
        MapTest = maps_code()["MapTest"]

        msg = MapTest(name="a", properties={"x": "1"})
        msg.reset()
        msg.reset()
        expect(msg) == MapTest()

    def renders_text(expect):
        MapTest = maps_code()["MapTest"]

        msg = MapTest(name="a", integer_properties={5: 10})
        expect(str(msg)) == 'name: "a" integer_properties { key: 5 value: 10 }'

    def generates_scalar_and_repeated_fields(expect):
        gen = gen_code(
            """
            message Sample {
                required uint32 id = 1;
                repeated sint32 deltas = 2 [packed = true];
                repeated string tags = 3;
                optional bytes blob = 4;
                map<uint64, double> weights = 5;
            }
            """,
            file_name="sample.proto",
        )
        Sample = gen["Sample"]

        msg = Sample(id=7, deltas=[-1, 1], tags=["a"], blob=b"\x00", weights={1: 0.5})
        expect(Sample.decode(msg.encode())) == msg
        expect(Sample.get_deltas(None)) == []
        expect(Sample.get_blob(None)) == b""
        expect(Sample.get_id(None)) == 0
        expect(Sample.get_weights(None)) == {}

    def applies_declared_defaults(expect):
        gen = gen_code(
            """
            message D {
                optional int32 count = 1 [default = 5];
                optional double ratio = 2 [default = inf];
                optional bytes raw = 3 [default = "\\377"];
                optional string name = 4 [default = "n"];
            }
            """,
            file_name="d.proto",
        )
        D = gen["D"]

        msg = D()
        expect((msg.count, msg.ratio, msg.raw, msg.name)) == (5, float("inf"), b"\xff", "n")
        expect(msg.encode()) == b""
        expect(D.decode(D(count=0).encode()).count) == 0
        expect(D.get_count(None)) == 5
        expect(D.get_raw(None)) == b"\xff"

    def renames_keyword_fields(expect):
        gen = gen_code("message K { optional int32 class = 1; }", file_name="k.proto")
        K = gen["K"]

        expect(K(class_=5).encode()) == b"\x08\x05"
        expect(K.descriptor().field_by_name("class").attr) == "class_"
        expect(K.get_class(None)) == 0


def describe_generated_registration():
    def registers_file_and_types(expect):
        MapTest = maps_code()["MapTest"]

        entry = default_registry().lookup("test.MapTest")
        expect(entry.message_type) == MapTest
        expect(entry.file_name) == "maps.proto"
        expect(MapTest.descriptor().name) == "test.MapTest"

    def embeds_gzipped_file_descriptor(expect):
        maps_code()

        blob = default_registry().lookup("test.MapTest").file_descriptor
        expect(blob[:2]) == b"\x1f\x8b"
        fields = list(iter_fields(gzip.decompress(blob)))
        expect(fields[0]) == (1, WireType.LEN, b"maps.proto")
        expect(fields[1]) == (2, WireType.LEN, b"test")

    def rejects_loading_twice(expect):
        maps_code()
        with raises(DuplicateTypeRegistration):
            maps_code()


def describe_generated_source():
    def declares_fields(expect):
        with open(f"{FILE_DIR}/../maps.proto", encoding="utf-8") as f:
            proto = parse(f.read(), file_name="maps.proto")
        source = render(proto, runtime_import="quickproto.proto")

        expect("@dataclass" in source) == True
        expect("class MapTest(Message):" in source) == True
        expect('full_name: ClassVar[str] = "test.MapTest"' in source) == True
        expect(
            'properties: dict[str, str] = map_field(number=2, key="string", value="string")'
            in source
        ) == True
        expect('name: str = proto_field("string", number=1)' in source) == True
        expect("from quickproto.proto.serialization import" in source) == True
        expect("sys.path" in source) == False

    def imports_local_runtime_by_default(expect):
        source = render(parse("message A {}", file_name="a.proto"))
        expect("sys.path.insert(0, _runtime_path)" in source) == True
        expect("from quickproto_runtime.serialization import" in source) == True

    def returns_runtime_files(expect):
        files = runtime()
        expect(sorted(files)) == sorted(
            ["__init__.py", "wire.py", "types.py", "text.py", "serialization.py", "registry.py"]
        )
        expect("class Message" in files["serialization.py"]) == True
