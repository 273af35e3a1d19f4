"""
tests/test_license_store.py

LicenseStore against an in-memory collection.
"""
import unittest

from errors import QueryFailure, StoreUnavailable, WriteFailure
from license_store import LicenseStore
from tests.stubs import FakeCollection


class TestLicenseStore(unittest.TestCase):
    def setUp(self) -> None:
        self.collection = FakeCollection()
        self.store = LicenseStore(self.collection)

    def test_insert_sets_created_at_and_returns_id(self) -> None:
        result = self.store.insert({"license": "K1", "domain": "a.com", "email": "x@a.com", "amount": 49.0})
        self.assertEqual(result, {"id": "id-1"})
        stored = self.collection.documents[0]
        self.assertIn("createdAt", stored)
        self.assertEqual(stored["domain"], "a.com")

    def test_insert_does_not_mutate_caller_record(self) -> None:
        record = {"license": "K1", "domain": "a.com", "email": "x@a.com", "amount": 1}
        self.store.insert(record)
        self.assertNotIn("createdAt", record)

    def test_insert_is_not_idempotent(self) -> None:
        record = {"license": "K1", "domain": "a.com", "email": "x@a.com", "amount": 1}
        self.store.insert(record)
        self.store.insert(record)
        self.assertEqual(len(self.collection.documents), 2)

    def test_find_one_matches_all_filters(self) -> None:
        self.store.insert({"license": "K1", "domain": "a.com", "email": "x@a.com", "amount": 1})
        self.store.insert({"license": "K2", "domain": "b.com", "email": "y@b.com", "amount": 1})
        self.assertEqual(self.store.find_one({"license": "K2", "domain": "b.com"})["email"], "y@b.com")
        self.assertIsNone(self.store.find_one({"license": "K1", "domain": "b.com"}))

    def test_find_one_ignores_none_filters(self) -> None:
        self.store.insert({"license": "K1", "domain": "a.com", "email": "x@a.com", "amount": 1})
        self.assertIsNotNone(self.store.find_one({"license": None, "domain": "a.com"}))
        self.assertEqual(self.collection.queries[-1], {"domain": "a.com"})

    def test_unavailable_store_raises(self) -> None:
        store = LicenseStore()
        self.assertFalse(store.available)
        with self.assertRaises(StoreUnavailable):
            store.insert({"license": "K1"})
        with self.assertRaises(StoreUnavailable):
            store.find_one({"domain": "a.com"})

    def test_from_uri_without_uri_is_unavailable(self) -> None:
        self.assertFalse(LicenseStore.from_uri(None, "license_db").available)

    def test_driver_errors_are_wrapped(self) -> None:
        with self.assertRaises(WriteFailure):
            LicenseStore(FakeCollection(fail_writes=True)).insert({"license": "K1"})
        with self.assertRaises(QueryFailure):
            LicenseStore(FakeCollection(fail_reads=True)).find_one({"domain": "a.com"})


if __name__ == "__main__":
    unittest.main()
