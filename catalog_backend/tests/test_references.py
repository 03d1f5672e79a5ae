import unittest

from catalog_backend.references import (
    is_absolute_url,
    to_public_url,
    to_reference,
    to_store_key,
)


class ReferenceResolverTests(unittest.TestCase):
    def test_store_key_from_relative_reference(self):
        self.assertEqual(to_store_key("/uploads/a.png"), "a.png")
        self.assertEqual(to_store_key("uploads/a.png"), "a.png")

    def test_store_key_is_none_for_non_store_references(self):
        self.assertIsNone(to_store_key(""))
        self.assertIsNone(to_store_key(None))
        self.assertIsNone(to_store_key("https://cdn.example.com/uploads/a.png"))
        self.assertIsNone(to_store_key("/images/a.png"))
        self.assertIsNone(to_store_key("/uploads/"))
        self.assertIsNone(to_store_key("/uploads/nested/a.png"))

    def test_custom_prefix(self):
        self.assertEqual(to_store_key("/media/a.png", prefix="/media/"), "a.png")
        self.assertEqual(to_reference("a.png", prefix="media"), "/media/a.png")

    def test_reference_roundtrip(self):
        self.assertEqual(to_store_key(to_reference("k.jpg")), "k.jpg")

    def test_public_url(self):
        self.assertEqual(
            to_public_url("/uploads/a.png", "http://localhost:5000/"),
            "http://localhost:5000/uploads/a.png",
        )
        self.assertEqual(
            to_public_url("http://elsewhere/x.png", "http://localhost:5000"),
            "http://elsewhere/x.png",
        )
        self.assertEqual(to_public_url("/other/x.png", "http://h"), "/other/x.png")
        self.assertIsNone(to_public_url("", "http://h"))

    def test_is_absolute_url(self):
        self.assertTrue(is_absolute_url("HTTPS://example.com/a.png"))
        self.assertFalse(is_absolute_url("/uploads/a.png"))
        self.assertFalse(is_absolute_url(None))


if __name__ == "__main__":
    unittest.main()
