import unittest
from types import SimpleNamespace

from activeregistry.errors import IndexNotFound, MissingAttributeError, UnhashableValueError
from activeregistry.index import DEFAULT_INDEX, AttributeIndex, IndexStore, normalize_index_name


def car(type_: str, color: str) -> SimpleNamespace:
    return SimpleNamespace(type=type_, color=color)


class NormalizeIndexNameTests(unittest.TestCase):
    def test_plain_and_compound_names(self) -> None:
        self.assertEqual(normalize_index_name("color"), "color")
        self.assertEqual(normalize_index_name(["type", "color"]), ("type", "color"))
        self.assertEqual(normalize_index_name(("type",)), "type")

    def test_rejects_other_types(self) -> None:
        for bad in (3, (), ("type", 3), None):
            with self.assertRaises(TypeError):
                normalize_index_name(bad)


class AttributeIndexTests(unittest.TestCase):
    def test_add_moves_between_buckets_and_prunes(self) -> None:
        index = AttributeIndex("color")
        index.add(1, "red")
        index.add(2, "red")
        index.add(1, "blue")

        self.assertEqual(index.get("red"), frozenset({2}))
        self.assertEqual(index.get("blue"), frozenset({1}))

        index.discard(2)
        self.assertEqual(index.get("red"), frozenset())
        self.assertEqual(len(index), 1)

    def test_compound_key_reads_every_attribute_in_order(self) -> None:
        index = AttributeIndex(("type", "color"))
        self.assertTrue(index.compound)
        self.assertEqual(index.key_for(car("car", "blue")), ("car", "blue"))
        self.assertEqual(index.key_with(car("car", "blue"), "color", "red"), ("car", "red"))

    def test_identity_index_uses_object_identity(self) -> None:
        item = car("car", "blue")
        self.assertEqual(AttributeIndex(DEFAULT_INDEX).key_for(item), id(item))

    def test_unhashable_lookup_raises(self) -> None:
        with self.assertRaises(UnhashableValueError):
            AttributeIndex("color").get(["red"])


class IndexStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.blue_car = car("car", "blue")
        self.red_car = car("car", "red")
        self.red_truck = car("truck", "red")
        self.items = [self.blue_car, self.red_car, self.red_truck]
        self.store = IndexStore()
        self.store.reindex_all(["type", "color"], self.items)

    def test_lookup_returns_ids_per_value(self) -> None:
        self.assertEqual(self.store.lookup("type", "car"), {id(self.blue_car), id(self.red_car)})
        self.assertEqual(self.store.lookup("color", "green"), frozenset())

    def test_lookup_on_undeclared_index_raises(self) -> None:
        with self.assertRaises(IndexNotFound) as ctx:
            self.store.lookup("size", 3)
        self.assertIn("size", str(ctx.exception))

    def test_second_declaration_is_a_no_op(self) -> None:
        before = self.store.as_dict()
        with self.assertLogs("activeregistry.index", level="WARNING"):
            self.assertFalse(self.store.declare_index("type", self.items))
        self.assertEqual(self.store.as_dict(), before)

    def test_failed_declaration_registers_nothing(self) -> None:
        items = self.items + [SimpleNamespace(type="bike")]
        with self.assertRaises(MissingAttributeError):
            self.store.declare_index("wheels", items)
        self.assertNotIn("wheels", self.store)

    def test_insert_is_all_or_nothing(self) -> None:
        incomplete = SimpleNamespace(type="bike")
        with self.assertRaises(MissingAttributeError) as ctx:
            self.store.insert(incomplete)
        self.assertIn("color", str(ctx.exception))
        self.assertEqual(self.store.lookup("type", "bike"), frozenset())
        self.assertEqual(self.store.lookup(DEFAULT_INDEX, id(incomplete)), frozenset())

    def test_insert_rejects_unhashable_values(self) -> None:
        with self.assertRaises(UnhashableValueError):
            self.store.insert(car("car", ["blue"]))
        self.assertEqual(self.store.lookup("type", "car"), {id(self.blue_car), id(self.red_car)})

    def test_remove_prunes_empty_buckets(self) -> None:
        self.store.remove(self.red_truck)
        self.assertNotIn("truck", self.store.as_dict()["type"])
        self.assertEqual(self.store.lookup("color", "red"), {id(self.red_car)})

    def test_remove_uses_recorded_bucket(self) -> None:
        self.blue_car.color = "green"
        self.store.remove(self.blue_car)
        self.assertEqual(self.store.lookup("color", "blue"), frozenset())
        self.assertEqual(self.store.lookup("color", "green"), frozenset())

    def test_relocate_moves_to_new_bucket_only(self) -> None:
        for color in ("green", "yellow", "blue"):
            old = self.blue_car.color
            self.blue_car.color = color
            self.store.relocate("color", self.blue_car, old, color)

        buckets = self.store.as_dict()["color"]
        holding = [value for value, ids in buckets.items() if id(self.blue_car) in ids]
        self.assertEqual(holding, ["blue"])

    def test_relocate_ignores_non_members(self) -> None:
        stranger = car("car", "pink")
        self.store.relocate("color", stranger, "pink", "blue")
        self.assertNotIn(id(stranger), self.store.lookup("color", "blue"))

    def test_compound_for_needs_exact_attribute_set(self) -> None:
        self.store.declare_index(("type", "color"), self.items)
        self.assertEqual(self.store.compound_for(["color", "type"]).name, ("type", "color"))
        self.assertIsNone(self.store.compound_for(["type"]))
        self.assertIsNone(self.store.compound_for(["type", "color", "size"]))

    def test_indexes_on_includes_compound_indexes(self) -> None:
        self.store.declare_index(("type", "color"), self.items)
        names = [index.name for index in self.store.indexes_on("color")]
        self.assertEqual(names, ["color", ("type", "color")])

    def test_reindex_all_keeps_identity_index_first(self) -> None:
        self.store.reindex_all(["color"], self.items)
        self.assertEqual(self.store.names, [DEFAULT_INDEX, "color"])
        self.assertEqual(self.store.user_names(), ["color"])


if __name__ == "__main__":
    unittest.main()
