"""Tests for screenshot reference parsing and URL resolution."""

import pytest

from trendi_tools.core.screenshots import (
    Absolute,
    LegacyPath,
    ScreenshotResolver,
    StorageId,
    has_double_prefix,
    image_path_for,
    parse_screenshot_ref,
    repair_double_prefix,
    resolve_screenshot_url,
    slugify,
)

SITE = "https://trendi.test"


class TestParseScreenshotRef:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("https://cdn.example.com/a.png", Absolute("https://cdn.example.com/a.png")),
            ("http://cdn.example.com/a.png", Absolute("http://cdn.example.com/a.png")),
            ("/image?id=kg123", LegacyPath("/image?id=kg123")),
            ("/images/figma-kg123.png", LegacyPath("/images/figma-kg123.png")),
            ("kg123", StorageId("kg123")),
        ],
    )
    def test_classifies_stored_values(self, value, expected):
        assert parse_screenshot_ref(value) == expected

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_values_have_no_reference(self, value):
        assert parse_screenshot_ref(value) is None


class TestResolveScreenshotUrl:
    def test_absolute_url_is_unchanged(self):
        url = "https://images.unsplash.com/photo-1?w=400"
        assert resolve_screenshot_url(Absolute(url), SITE, "Figma") == url

    def test_normalizing_is_idempotent_for_resolved_urls(self):
        resolve = ScreenshotResolver(SITE)
        once = resolve("kg123", "Notion AI")
        assert resolve(once, "Notion AI") == once

    def test_legacy_path_gets_site_prefix(self):
        assert resolve_screenshot_url(LegacyPath("/image?id=kg1"), SITE + "/") == f"{SITE}/image?id=kg1"

    def test_storage_id_with_name_uses_seo_path(self):
        assert (
            resolve_screenshot_url(StorageId("kg1"), SITE, "Notion AI!")
            == f"{SITE}/images/notion-ai-kg1.png"
        )

    def test_storage_id_is_deterministic(self):
        resolve = ScreenshotResolver(SITE)
        assert resolve("kg1", "Figma") == resolve("kg1", "Figma")

    def test_storage_id_without_usable_name_uses_image_route(self):
        assert resolve_screenshot_url(StorageId("kg1"), SITE, "!!!") == f"{SITE}/image?id=kg1"
        assert resolve_screenshot_url(StorageId("kg1"), SITE) == f"{SITE}/image?id=kg1"

    def test_missing_reference_resolves_to_none(self):
        assert ScreenshotResolver(SITE)(None, "Figma") is None


class TestSlugify:
    @pytest.mark.parametrize(
        "name,slug",
        [
            ("Figma", "figma"),
            ("Notion AI", "notion-ai"),
            ("  Hello -- World!  ", "hello-world"),
            ("C++ & Rust", "c-rust"),
        ],
    )
    def test_slug(self, name, slug):
        assert slugify(name) == slug


class TestDoublePrefixRepair:
    def test_detects_and_repairs(self):
        value = "/image?id=/image?id=kg42"
        assert has_double_prefix(value)
        assert repair_double_prefix(value) == image_path_for("kg42")

    def test_well_formed_value_is_left_alone(self):
        assert not has_double_prefix("/image?id=kg42")
        assert repair_double_prefix("/image?id=kg42") is None
        assert not has_double_prefix(None)
