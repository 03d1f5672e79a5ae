import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from catalog_backend.db import InMemoryDbClient
from catalog_backend.errors import (
    InvalidImageFormat,
    MissingImage,
    MissingRequiredFields,
    ProductNotFound,
)
from catalog_backend.ingestion import ImageInput, IngestionPipeline
from catalog_backend.service import CatalogService
from catalog_backend.storage import LocalBlobStore
from catalog_backend.validation import ImageValidator

BASE_URL = "http://shop.test"
PNG = "data:image/png;base64,AAAA"
JPEG = "data:image/jpeg;base64,/9j/"

FIELDS = {
    "title": "Oud Noir",
    "description": "Smoky",
    "rating": 4.5,
    "price": 120,
    "discount": 10,
}


def _key(reference):
    return reference.rsplit("/", 1)[1]


class CatalogServiceTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.store = LocalBlobStore(Path(self.tmp) / "uploads")
        self.db = InMemoryDbClient()
        validator = ImageValidator(self.store)
        self.service = CatalogService(
            self.db, self.store, validator, IngestionPipeline(self.store, validator)
        )

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def _create(self, data_uri=PNG):
        return self.service.create(FIELDS, ImageInput(inline_data=data_uri), BASE_URL)

    def test_create_with_inline_png(self):
        view = self._create()
        reference = view.record.image_url
        self.assertRegex(reference, r"^/uploads/base64-\d+-[0-9a-f]{8}\.png$")
        self.assertTrue(view.image_exists)
        self.assertEqual(view.full_image_url, BASE_URL + reference)
        self.assertTrue(self.store.exists(_key(reference)))
        self.assertEqual(len(self.db.products), 1)

    def test_create_without_image_saves_nothing(self):
        with self.assertRaises(MissingImage):
            self.service.create(FIELDS, ImageInput(), BASE_URL)
        self.assertEqual(self.db.products, {})

    def test_create_with_malformed_image_saves_nothing(self):
        with self.assertRaises(InvalidImageFormat):
            self._create("data:image/png;base64")
        self.assertEqual(self.db.products, {})
        self.assertEqual(self.store.list(), [])

    def test_create_checks_required_fields_before_writing(self):
        fields = dict(FIELDS, title="  ", discount=None)
        with self.assertRaises(MissingRequiredFields) as ctx:
            self.service.create(fields, ImageInput(inline_data=PNG), BASE_URL)
        self.assertEqual(ctx.exception.details["missing"], ["title", "discount"])
        self.assertEqual(self.store.list(), [])

    def test_zero_discount_is_accepted(self):
        view = self.service.create(
            dict(FIELDS, discount=0), ImageInput(inline_data=PNG), BASE_URL
        )
        self.assertEqual(view.record.discount, 0)

    def test_failed_record_save_removes_new_blob(self):
        with patch.object(self.db, "create_product", side_effect=RuntimeError("db down")):
            with self.assertRaises(RuntimeError):
                self._create()
        self.assertEqual(self.store.list(), [])

    def test_update_with_new_image_replaces_old_blob(self):
        created = self._create()
        old_key = _key(created.record.image_url)

        updated = self.service.update(
            created.record.id, {"price": 99}, ImageInput(inline_data=JPEG), BASE_URL
        )
        new_key = _key(updated.record.image_url)
        self.assertNotEqual(old_key, new_key)
        self.assertTrue(new_key.endswith(".jpeg"))
        self.assertFalse(self.store.exists(old_key))
        self.assertTrue(self.store.exists(new_key))
        self.assertTrue(updated.image_exists)
        self.assertEqual(updated.record.price, 99)
        self.assertEqual(updated.record.title, "Oud Noir")

    def test_update_without_image_keeps_blob(self):
        created = self._create()
        updated = self.service.update(
            created.record.id, {"title": "Oud Blanc", "price": None}, ImageInput(), BASE_URL
        )
        self.assertEqual(updated.record.image_url, created.record.image_url)
        self.assertEqual(updated.record.title, "Oud Blanc")
        self.assertEqual(updated.record.price, 120)
        self.assertTrue(self.store.exists(_key(created.record.image_url)))

    def test_update_reusing_same_upload_key_keeps_blob(self):
        self.store.write("image-1-same.png", b"png")
        created = self.service.create(
            FIELDS, ImageInput(upload_key="image-1-same.png"), BASE_URL
        )
        updated = self.service.update(
            created.record.id, {}, ImageInput(upload_key="image-1-same.png"), BASE_URL
        )
        self.assertEqual(updated.record.image_url, "/uploads/image-1-same.png")
        self.assertTrue(self.store.exists("image-1-same.png"))

    def test_update_echoing_current_reference_keeps_blob(self):
        created = self._create()
        reference = created.record.image_url
        for echoed in [reference, created.full_image_url]:
            updated = self.service.update(
                created.record.id,
                {"title": "Oud Blanc"},
                ImageInput(inline_data=echoed),
                BASE_URL,
            )
            self.assertEqual(updated.record.image_url, reference)
            self.assertEqual(updated.record.title, "Oud Blanc")
        self.assertEqual(self.store.list(), [_key(reference)])

    def test_update_with_other_reference_is_rejected(self):
        created = self._create()
        with self.assertRaises(InvalidImageFormat):
            self.service.update(
                created.record.id,
                {},
                ImageInput(inline_data="/uploads/someone-else.png"),
                BASE_URL,
            )
        self.assertEqual(
            self.db.get_product(created.record.id).image_url, created.record.image_url
        )

    def test_old_blob_delete_failure_does_not_fail_update(self):
        created = self._create()
        old_key = _key(created.record.image_url)
        with patch.object(self.store, "delete", side_effect=PermissionError("locked")):
            with self.assertLogs("catalog_backend.service", level="ERROR"):
                updated = self.service.update(
                    created.record.id, {}, ImageInput(inline_data=JPEG), BASE_URL
                )
        self.assertTrue(self.store.exists(old_key))
        self.assertNotEqual(updated.record.image_url, created.record.image_url)

    def test_update_unknown_product(self):
        with self.assertRaises(ProductNotFound):
            self.service.update("missing", {}, ImageInput(inline_data=PNG), BASE_URL)
        self.assertEqual(self.store.list(), [])

    def test_delete_removes_record_and_blob(self):
        created = self._create()
        self.service.delete(created.record.id)
        self.assertEqual(self.db.products, {})
        self.assertEqual(self.store.list(), [])
        with self.assertRaises(ProductNotFound):
            self.service.delete(created.record.id)

    def test_delete_survives_blob_failure(self):
        created = self._create()
        with patch.object(self.store, "delete", side_effect=OSError("io")):
            self.service.delete(created.record.id)
        self.assertEqual(self.db.products, {})

    def test_missing_blob_is_reported_not_hidden(self):
        self.db.create_product(dict(FIELDS, image_url="/uploads/missing.jpg"))
        [view] = self.service.list_with_image_status(BASE_URL)
        self.assertFalse(view.image_exists)
        self.assertEqual(view.full_image_url, "http://shop.test/uploads/missing.jpg")

    def test_absolute_reference_passes_through(self):
        record = self.db.create_product(
            dict(FIELDS, image_url="https://cdn.example.com/a.png")
        )
        view = self.service.get_by_id_with_image_status(record.id, BASE_URL)
        self.assertTrue(view.image_exists)
        self.assertEqual(view.full_image_url, "https://cdn.example.com/a.png")

    def test_image_status_report(self):
        created = self._create()
        self.db.create_product(dict(FIELDS, title="Gone", image_url="/uploads/gone.png"))
        report = {entry.title: entry for entry in self.service.image_status_report(BASE_URL)}
        self.assertTrue(report["Oud Noir"].exists)
        self.assertEqual(report["Oud Noir"].id, created.record.id)
        self.assertFalse(report["Gone"].exists)
        self.assertEqual(report["Gone"].full_url, "http://shop.test/uploads/gone.png")

    def test_store_status(self):
        self._create()
        self._create(JPEG)
        status = self.service.store_status()
        self.assertTrue(status.exists)
        self.assertEqual(status.file_count, 2)
        self.assertEqual(status.total_size, 6)
        self.assertEqual(len(status.files), 2)


if __name__ == "__main__":
    unittest.main()
