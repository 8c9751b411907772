import threading

import pytest

from openapi_docgen.errors import RegistryFrozenError
from openapi_docgen.registry import Registry


class TestRegistry:
    def test_register_and_read(self):
        registry = Registry()
        registry.register_handler("get_user", doc="Get user", tags=["users"])
        registry.register_schema("User", {"type": "object"})

        handlers = registry.all_handlers()
        assert len(handlers) == 1
        assert handlers[0].identifier == "get_user"
        assert handlers[0].tags == ("users",)
        assert [s.name for s in registry.all_schemas()] == ["User"]

    def test_same_schema_name_registered_twice_is_kept(self):
        registry = Registry()
        registry.register_schema("User", {"type": "object"})
        registry.register_schema("User", '{"type": "string"}')
        assert [s.definition for s in registry.all_schemas()] == [{"type": "object"}, '{"type": "string"}']

    def test_definitions_are_not_validated_on_registration(self):
        registry = Registry()
        registry.register_schema("Broken", "{not json")
        assert registry.all_schemas()[0].definition == "{not json"

    def test_reads_are_snapshots(self):
        registry = Registry()
        registry.register_handler("a")
        snapshot = registry.all_handlers()
        registry.register_handler("b")
        assert len(snapshot) == 1
        assert len(registry.all_handlers()) == 2

    def test_freeze_blocks_registration(self):
        registry = Registry()
        registry.register_handler("a")
        registry.freeze()
        assert registry.frozen is True
        with pytest.raises(RegistryFrozenError):
            registry.register_handler("b")
        with pytest.raises(RegistryFrozenError):
            registry.register_schema("User", {})
        assert len(registry.all_handlers()) == 1

    def test_concurrent_registration(self):
        registry = Registry()

        def register(worker: int):
            for i in range(200):
                registry.register_handler(f"handler_{worker}_{i}", doc=f"Handler {i}")
                registry.register_schema(f"Schema{worker}_{i}", {"type": "object"})

        threads = [threading.Thread(target=register, args=(w,)) for w in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        handlers = registry.all_handlers()
        assert len(handlers) == 1600
        assert len({h.identifier for h in handlers}) == 1600
        assert len(registry.all_schemas()) == 1600
