"""
Tests for the catalog mapping, registration email and archive pages.
"""

import json

import pytest


class TestCatalog:
    def test_default_price_ids(self, catalog):
        assert set(catalog.entries) == {
            "price_full_day",
            "price_practical_ai_architecture",
            "price_image_gen_ai",
            "price_google_hp_gas",
        }

    def test_full_day_grants_everything(self, catalog):
        entry = catalog.lookup("price_full_day")

        assert entry.registration_keys == ("A", "B", "C", "D", "E", "F")
        assert entry.archive_session_keys == ("A", "B", "C", "D", "E1", "E2", "F")

    @pytest.mark.parametrize(
        "price_id, registration_keys, archive_keys",
        [
            ("price_practical_ai_architecture", ("C", "F"), ("A", "B", "C", "F")),
            ("price_image_gen_ai", ("D", "F"), ("A", "B", "D", "F")),
            ("price_google_hp_gas", ("E", "F"), ("A", "B", "E1", "E2", "F")),
        ],
    )
    def test_single_seminars(self, catalog, price_id, registration_keys, archive_keys):
        entry = catalog.lookup(price_id)

        assert entry.registration_keys == registration_keys
        assert catalog.archive_keys_for(price_id) == archive_keys

    def test_unknown_price(self, catalog):
        assert catalog.lookup("price_unknown") is None
        assert catalog.lookup(None) is None
        assert catalog.archive_keys_for("price_unknown") == ()

    def test_price_ids_from_environment(self, monkeypatch):
        from shared.catalog import load_catalog

        monkeypatch.setenv("PRICE_ID_FULL_DAY", "price_live_full")
        monkeypatch.setenv("PRICE_ID_IMAGE_GEN_AI", "")  # empty falls back

        catalog = load_catalog()

        assert catalog.lookup("price_live_full").display_name == "AI FES. Ticket (full day)"
        assert catalog.lookup("price_image_gen_ai") is not None
        assert catalog.lookup("price_full_day") is None

    def test_circle_product_default_and_override(self, monkeypatch):
        from shared.catalog import load_catalog

        assert load_catalog().circle_product_id == "prod_TA2S72xlZ4teEN"

        monkeypatch.setenv("CIRCLE_PRODUCT_ID", "prod_other")
        assert load_catalog().circle_product_id == "prod_other"

    def test_registration_links(self, monkeypatch):
        from shared.catalog import load_catalog

        monkeypatch.setenv(
            "REGISTRATION_LINKS",
            json.dumps({"C": "https://zoom.example/c", "Z": "https://zoom.example/z"}),
        )
        catalog = load_catalog()

        assert catalog.registration_url("C") == "https://zoom.example/c"
        assert catalog.registration_url("Z") is None
        assert catalog.registration_url("D") is None

    def test_invalid_registration_links_are_ignored(self, monkeypatch):
        from shared.catalog import load_catalog

        monkeypatch.setenv("REGISTRATION_LINKS", "not json")

        assert load_catalog().registration_url("A") is None

    def test_tables_are_read_only(self, catalog):
        with pytest.raises(TypeError):
            catalog.entries["price_new"] = None

    def test_archive_sessions_cover_every_key(self, catalog):
        assert tuple(catalog.archive_sessions) == catalog.full_access_keys
        assert catalog.archive_sessions["E1"].coming_soon
        assert not catalog.archive_sessions["E1"].video_id


class TestCanonicalOrder:
    def test_orders_and_drops_unknown(self):
        from shared.catalog import canonical_order
        from shared.constants import SESSION_KEY_ORDER

        assert canonical_order({"F", "A", "E2", "X"}, SESSION_KEY_ORDER) == ["A", "E2", "F"]

    def test_duplicates_collapse(self):
        from shared.catalog import canonical_order
        from shared.constants import REGISTRATION_KEY_ORDER

        assert canonical_order(["F", "C", "F"], REGISTRATION_KEY_ORDER) == ["C", "F"]


class TestRegistrationEmail:
    def test_lists_each_key_with_link(self, monkeypatch):
        from shared.catalog import load_catalog
        from shared.email_content import build_registration_email

        monkeypatch.setenv("REGISTRATION_LINKS", json.dumps({"C": "https://zoom.example/c"}))
        catalog = load_catalog()

        content = build_registration_email("Practical seminar", ["C", "F"], catalog)

        assert "Practical seminar" in content.html
        assert "https://zoom.example/c" in content.html
        assert catalog.registration_title("C") in content.text
        assert catalog.registration_title("F") in content.text
        assert "Registration link will be sent separately" in content.text
        assert "this email address" in content.text

    def test_escapes_html(self, catalog):
        from shared.email_content import build_registration_email

        content = build_registration_email("<script>x</script>", ["F"], catalog)

        assert "<script>" not in content.html
        assert "&lt;script&gt;" in content.html

    def test_support_link(self, catalog):
        from shared.email_content import build_registration_email

        content = build_registration_email("Item", ["F"], catalog, support_url="https://forms.example/s")

        assert "https://forms.example/s" in content.html
        assert "https://forms.example/s" in content.text


class TestPages:
    def test_archive_page_renders_granted_sessions(self, catalog):
        from shared.pages import render_archive_page

        page = render_archive_page(["A", "E1", "F"], catalog)

        assert "youtube.com/embed/zspijMjW-tU" in page
        assert "youtube.com/embed/QZ3voPMY7QU" in page
        assert catalog.archive_sessions["E1"].coming_soon in page
        assert "4ItAbxrfL84" not in page  # C not granted

    def test_error_page_escapes_message(self):
        from shared.pages import render_error_page

        page = render_error_page("<b>nope</b>")

        assert "&lt;b&gt;nope&lt;/b&gt;" in page
