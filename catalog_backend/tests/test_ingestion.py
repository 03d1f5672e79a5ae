import re
import unittest
from unittest.mock import patch

from catalog_backend.errors import InvalidImageFormat, MissingImage, PersistenceFailure
from catalog_backend.ingestion import (
    ImageInput,
    IngestionPipeline,
    new_blob_key,
    parse_data_uri,
)
from catalog_backend.storage import InMemoryBlobStore
from catalog_backend.validation import ImageValidator

INLINE_REFERENCE = re.compile(r"^/uploads/base64-\d+-[0-9a-f]{8}\.(\w+)$")


class LossyBlobStore(InMemoryBlobStore):
    """Accepts writes but never shows them, like a silently failing disk."""

    def write(self, key, data):
        pass


class ParseDataUriTests(unittest.TestCase):
    def test_parses_extension_and_payload(self):
        ext, payload = parse_data_uri("data:image/png;base64,AAAA")
        self.assertEqual(ext, "png")
        self.assertEqual(payload, b"\x00\x00\x00")

    def test_rejects_malformed_strings(self):
        for value in [
            "",
            "hello",
            "data:image/png,AAAA",
            "data:image/png;base64",
            "data:text/plain;base64,AAAA",
            "data:application/pdf;base64,AAAA",
            "image/png;base64,AAAA",
            "data:image/svg+xml;base64,AAAA",
            "data:image/png;base64,!!!not-base64!!!",
        ]:
            with self.assertRaises(InvalidImageFormat, msg=value):
                parse_data_uri(value)


class BlobKeyTests(unittest.TestCase):
    def test_keys_are_unique_and_shaped(self):
        keys = {new_blob_key("jpeg") for _ in range(200)}
        self.assertEqual(len(keys), 200)
        for key in keys:
            self.assertRegex(key, r"^base64-\d+-[0-9a-f]{8}\.jpeg$")

    def test_label_and_dotted_extension(self):
        self.assertRegex(new_blob_key(".png", label="image"), r"^image-\d+-[0-9a-f]{8}\.png$")
        self.assertRegex(new_blob_key("", label="image"), r"^image-\d+-[0-9a-f]{8}$")


class IngestionPipelineTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryBlobStore()
        self.pipeline = IngestionPipeline(self.store, ImageValidator(self.store))

    def test_inline_payload_is_written_with_declared_extension(self):
        for ext in ["png", "jpeg", "gif", "webp", "PNG"]:
            reference = self.pipeline.ingest(
                ImageInput(inline_data=f"data:image/{ext};base64,AAAA")
            )
            match = INLINE_REFERENCE.match(reference)
            self.assertIsNotNone(match, reference)
            self.assertEqual(match.group(1), ext)
            key = reference.rsplit("/", 1)[1]
            self.assertTrue(self.store.exists(key))
            self.assertEqual(self.store.read(key), b"\x00\x00\x00")

    def test_malformed_inline_payload_writes_nothing(self):
        with self.assertRaises(InvalidImageFormat):
            self.pipeline.ingest(ImageInput(inline_data="data:image/png;AAAA"))
        with self.assertRaises(InvalidImageFormat):
            self.pipeline.ingest(ImageInput(inline_data="https://example.com/a.png"))
        self.assertEqual(self.store.list(), [])

    def test_upload_must_already_be_in_store(self):
        self.store.write("image-1-abc.png", b"png")
        reference = self.pipeline.ingest(ImageInput(upload_key="image-1-abc.png"))
        self.assertEqual(reference, "/uploads/image-1-abc.png")

        with self.assertRaises(PersistenceFailure):
            self.pipeline.ingest(ImageInput(upload_key="never-written.png"))

    def test_upload_takes_precedence_over_inline(self):
        self.store.write("up.png", b"png")
        reference = self.pipeline.ingest(
            ImageInput(upload_key="up.png", inline_data="data:image/gif;base64,AAAA")
        )
        self.assertEqual(reference, "/uploads/up.png")
        self.assertEqual(self.store.list(), ["up.png"])

    def test_write_that_does_not_land_is_a_persistence_failure(self):
        store = LossyBlobStore()
        pipeline = IngestionPipeline(store, ImageValidator(store))
        with self.assertRaises(PersistenceFailure):
            pipeline.ingest(ImageInput(inline_data="data:image/png;base64,AAAA"))

    def test_no_input(self):
        self.assertIsNone(self.pipeline.ingest(ImageInput()))
        with self.assertRaises(MissingImage):
            self.pipeline.require(ImageInput())

    @patch("catalog_backend.ingestion.time.time", return_value=1700000000.5)
    def test_timestamp_is_milliseconds(self, _mock_time):
        reference = self.pipeline.require(
            ImageInput(inline_data="data:image/png;base64,AAAA")
        )
        self.assertTrue(reference.startswith("/uploads/base64-1700000000500-"))


if __name__ == "__main__":
    unittest.main()
