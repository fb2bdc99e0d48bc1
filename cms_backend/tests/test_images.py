import io
import unittest
from unittest import mock

from botocore.exceptions import ClientError
from PIL import Image

from cms_backend.images import compress_image, content_type_for, safe_filename
from cms_backend.storage import InMemoryImageStore, S3ImageStore


def make_png(width: int, height: int, mode: str = "RGB") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, (width, height)).save(buffer, format="PNG")
    return buffer.getvalue()


class CompressImageTests(unittest.TestCase):
    def test_wide_image_is_resized_to_max_width(self):
        output = compress_image(make_png(1600, 400))

        with Image.open(io.BytesIO(output)) as image:
            self.assertEqual(image.format, "WEBP")
            self.assertEqual(image.size, (800, 200))

    def test_small_image_is_not_enlarged(self):
        output = compress_image(make_png(120, 90))
        with Image.open(io.BytesIO(output)) as image:
            self.assertEqual(image.size, (120, 90))

    def test_custom_width(self):
        output = compress_image(make_png(300, 300), max_width=100, quality=50)
        with Image.open(io.BytesIO(output)) as image:
            self.assertEqual(image.size, (100, 100))

    def test_palette_image_is_converted(self):
        output = compress_image(make_png(40, 20, mode="P"))
        with Image.open(io.BytesIO(output)) as image:
            self.assertEqual(image.format, "WEBP")

    def test_rejects_non_images(self):
        with self.assertRaises(ValueError):
            compress_image(b"definitely not an image")


class ImageHelperTests(unittest.TestCase):
    def test_content_type_for(self):
        self.assertEqual(content_type_for("a.PNG"), "image/png")
        self.assertEqual(content_type_for("a.webp"), "image/webp")
        self.assertEqual(content_type_for("a.svg"), "image/svg+xml")
        self.assertEqual(content_type_for("noextension"), "image/jpeg")
        self.assertEqual(content_type_for("a.bmp"), "image/jpeg")

    def test_safe_filename(self):
        self.assertEqual(safe_filename("photo.png"), "photo.png")
        self.assertEqual(safe_filename("../../etc/passwd"), "passwd")
        self.assertEqual(safe_filename("C:\\Users\\me\\pic.jpg"), "pic.jpg")
        self.assertEqual(safe_filename(None), "upload")


class InMemoryImageStoreTests(unittest.TestCase):
    def test_save_get_list(self):
        store = InMemoryImageStore()
        store.save("1-a.png", b"a")
        store.save("2-b.png", b"b", content_type="image/png")

        self.assertEqual(store.get("1-a.png"), b"a")
        self.assertIsNone(store.get("missing.png"))
        self.assertEqual(store.list(), ["1-a.png", "2-b.png"])


class S3ImageStoreTests(unittest.TestCase):
    def setUp(self):
        self.client = mock.Mock()
        with mock.patch("cms_backend.storage.boto3.client", return_value=self.client):
            self.store = S3ImageStore(
                bucket="media",
                region="us-east-1",
                endpoint="",
                access_key_id="key",
                secret_access_key="secret",
            )

    def test_save_uses_image_prefix(self):
        self.store.save("1-a.png", b"data", content_type="image/png")
        self.client.put_object.assert_called_once_with(
            Bucket="media", Key="images/1-a.png", Body=b"data", ContentType="image/png"
        )

    def test_get_missing_returns_none(self):
        self.client.get_object.side_effect = ClientError(
            {"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject"
        )
        self.assertIsNone(self.store.get("nope.png"))

    def test_get_other_errors_propagate(self):
        self.client.get_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "no"}}, "GetObject"
        )
        with self.assertRaises(ClientError):
            self.store.get("secret.png")

    def test_list_strips_prefix(self):
        paginator = mock.Mock()
        paginator.paginate.return_value = [
            {"Contents": [{"Key": "images/1-a.png"}, {"Key": "images/2-b.png"}]},
            {},
        ]
        self.client.get_paginator.return_value = paginator

        self.assertEqual(self.store.list(), ["1-a.png", "2-b.png"])
        paginator.paginate.assert_called_once_with(Bucket="media", Prefix="images/")


if __name__ == "__main__":
    unittest.main()
