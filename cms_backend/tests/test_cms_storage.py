import unittest
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from cms_backend.cms_storage import InMemoryCMSStorage


class InMemoryTextContentTests(unittest.TestCase):
    def setUp(self):
        self.storage = InMemoryCMSStorage()

    def test_save_and_fetch(self):
        record = self.storage.save_text_content("home.hero", "<p>Hi</p>")

        self.assertTrue(record.id)
        self.assertEqual(record.created_at, record.updated_at)
        self.assertEqual(self.storage.get_text_content(record.id), record)
        self.assertEqual(self.storage.get_text_content_by_key("home.hero"), record)
        self.assertEqual(self.storage.list_text_content(), [record])

    def test_missing_records(self):
        self.assertIsNone(self.storage.get_text_content("nope"))
        self.assertIsNone(self.storage.get_text_content_by_key("nope"))
        self.assertIsNone(self.storage.update_text_content("nope", {"content": "x"}))
        self.assertFalse(self.storage.delete_text_content("nope"))

    def test_update_touches_only_given_fields(self):
        record = self.storage.save_text_content("k", "old")

        updated = self.storage.update_text_content(record.id, {"content": "new"})

        self.assertEqual(updated.key, "k")
        self.assertEqual(updated.content, "new")
        self.assertEqual(updated.created_at, record.created_at)
        self.assertGreaterEqual(updated.updated_at, record.updated_at)
        self.assertEqual(self.storage.get_text_content(record.id).content, "new")

    def test_update_rejects_unknown_fields(self):
        record = self.storage.save_text_content("k", "v")
        with self.assertRaises(ValueError):
            self.storage.update_text_content(record.id, {"created_at": "x"})

    def test_delete(self):
        record = self.storage.save_text_content("k", "v")

        self.assertTrue(self.storage.delete_text_content(record.id))
        self.assertIsNone(self.storage.get_text_content(record.id))
        self.assertFalse(self.storage.delete_text_content(record.id))

    def test_concurrent_saves_and_updates(self):
        with ThreadPoolExecutor(max_workers=8) as pool:
            records = list(
                pool.map(
                    lambda i: self.storage.save_text_content(f"key-{i}", f"v{i}"),
                    range(200),
                )
            )
        self.assertEqual(len(self.storage.list_text_content()), 200)
        self.assertEqual(len({record.id for record in records}), 200)

        with ThreadPoolExecutor(max_workers=8) as pool:
            updated = list(
                pool.map(
                    lambda record: self.storage.update_text_content(
                        record.id, {"content": f"updated-{record.key}"}
                    ),
                    records,
                )
            )
            listed = list(pool.map(lambda _: len(self.storage.list_text_content()), range(50)))

        self.assertTrue(all(record is not None for record in updated))
        self.assertEqual(set(listed), {200})
        for record in records:
            stored = self.storage.get_text_content(record.id)
            self.assertEqual(stored.content, f"updated-{record.key}")

    def test_concurrent_publishes_keep_one_timestamp(self):
        post = self.storage.save_blog_post(title="t", slug="s", content="c")
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(
                pool.map(
                    lambda _: self.storage.update_blog_post(post.id, {"published": True}),
                    range(40),
                )
            )
        stamps = {result.published_at for result in results}
        self.assertEqual(len(stamps), 1)
        self.assertEqual(self.storage.get_blog_post(post.id).published_at, stamps.pop())

    def test_reset_clears_everything(self):
        self.storage.save_text_content("k", "v")
        self.storage.save_blog_post(title="t", slug="s", content="c")
        self.storage.save_page_config(page_key="p", title="t", config={})

        self.storage.reset()

        self.assertEqual(self.storage.list_text_content(), [])
        self.assertEqual(self.storage.list_blog_posts(), [])
        self.assertEqual(self.storage.list_page_configs(), [])


class InMemoryBlogPostTests(unittest.TestCase):
    def setUp(self):
        self.storage = InMemoryCMSStorage()

    def test_defaults(self):
        post = self.storage.save_blog_post(title="t", slug="s", content="c")

        self.assertEqual(post.author_id, "unknown")
        self.assertFalse(post.published)
        self.assertIsNone(post.published_at)
        self.assertIsNone(post.tags)

    def test_published_on_create_sets_published_at(self):
        post = self.storage.save_blog_post(
            title="t", slug="s", content="c", published=True, author_id="u1"
        )
        self.assertEqual(post.published_at, post.created_at)

    def test_explicit_published_at_is_kept(self):
        when = datetime(2024, 1, 2, tzinfo=timezone.utc)
        post = self.storage.save_blog_post(
            title="t", slug="s", content="c", published=True, published_at=when
        )
        self.assertEqual(post.published_at, when)

    def test_published_at_is_assigned_once(self):
        post = self.storage.save_blog_post(title="t", slug="s", content="c")

        first = self.storage.update_blog_post(post.id, {"published": True})
        self.assertTrue(first.published)
        self.assertIsNotNone(first.published_at)

        hidden = self.storage.update_blog_post(post.id, {"published": False})
        self.assertFalse(hidden.published)
        self.assertEqual(hidden.published_at, first.published_at)

        again = self.storage.update_blog_post(post.id, {"published": True})
        self.assertEqual(again.published_at, first.published_at)

    def test_published_at_cannot_be_changed_directly(self):
        post = self.storage.save_blog_post(title="t", slug="s", content="c")
        with self.assertRaises(ValueError):
            self.storage.update_blog_post(post.id, {"published_at": None})

    def test_list_filters_by_published(self):
        draft = self.storage.save_blog_post(title="d", slug="d", content="c")
        live = self.storage.save_blog_post(
            title="l", slug="l", content="c", published=True
        )

        self.assertEqual(self.storage.list_blog_posts(published=True), [live])
        self.assertEqual(self.storage.list_blog_posts(published=False), [draft])
        self.assertEqual(len(self.storage.list_blog_posts()), 2)

    def test_lookup_by_slug(self):
        post = self.storage.save_blog_post(title="t", slug="hello", content="c")
        self.assertEqual(self.storage.get_blog_post_by_slug("hello"), post)
        self.assertIsNone(self.storage.get_blog_post_by_slug("bye"))

    def test_tags_are_copied(self):
        tags = ["a", "b"]
        post = self.storage.save_blog_post(title="t", slug="s", content="c", tags=tags)
        tags.append("c")
        self.assertEqual(post.tags, ["a", "b"])

    def test_as_dict_uses_api_field_names(self):
        post = self.storage.save_blog_post(
            title="t", slug="s", content="c", featured_image="images/x.webp"
        )
        payload = post.as_dict()

        self.assertEqual(payload["authorId"], "unknown")
        self.assertEqual(payload["featuredImage"], "images/x.webp")
        self.assertIsNone(payload["publishedAt"])
        self.assertEqual(payload["createdAt"], post.created_at.isoformat())


class InMemoryPageConfigTests(unittest.TestCase):
    def setUp(self):
        self.storage = InMemoryCMSStorage()

    def test_crud(self):
        record = self.storage.save_page_config(
            page_key="home", title="Home", config={"hero": {"visible": True}}
        )
        self.assertEqual(self.storage.get_page_config_by_key("home"), record)
        self.assertIsNone(record.description)

        updated = self.storage.update_page_config(
            record.id, {"description": "Landing", "config": {"hero": None}}
        )
        self.assertEqual(updated.description, "Landing")
        self.assertEqual(updated.config, {"hero": None})
        self.assertEqual(updated.title, "Home")

        self.assertTrue(self.storage.delete_page_config(record.id))
        self.assertIsNone(self.storage.get_page_config(record.id))
        self.assertEqual(self.storage.list_page_configs(), [])

    def test_update_rejects_unknown_fields(self):
        record = self.storage.save_page_config(page_key="p", title="t", config={})
        with self.assertRaises(ValueError):
            self.storage.update_page_config(record.id, {"id": "other"})


if __name__ == "__main__":
    unittest.main()
