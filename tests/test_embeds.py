"""Product and event embeds in blog content."""

from __future__ import annotations

from decimal import Decimal

from storefront.content.embeds import (
    EventEmbed,
    ProductEmbed,
    embeds_from_document,
    extract_embed_ids,
    parse_embeds,
    resolve_embeds,
    to_node,
)
from storefront.store.memory import InMemoryStore


class TestRender:
    def test_product_html(self):
        embed = ProductEmbed("prod_1", "Rose Quartz", "https://img/rq.png", Decimal("24.99"))
        assert embed.to_html() == (
            '<div data-type="product-embed" data-product-id="prod_1" '
            'data-product-title="Rose Quartz" data-product-image="https://img/rq.png" '
            'data-product-price="24.99"></div>'
        )

    def test_escapes_and_skips_none(self):
        html = EventEmbed(event_id="ev_1", event_title='Moon "Circle" & Tea').to_html()
        assert 'data-event-title="Moon &quot;Circle&quot; &amp; Tea"' in html
        assert "data-event-image" not in html

    def test_node(self):
        node = to_node(EventEmbed(event_id="ev_1", event_date="2026-07-10"))
        assert node["type"] == "eventEmbed"
        assert node["attrs"]["eventId"] == "ev_1"
        assert node["attrs"]["eventDate"] == "2026-07-10"


class TestParse:
    def test_html_round_trip(self):
        product = ProductEmbed("prod_1", "Rose & Quartz", None, Decimal("12.50"))
        event = EventEmbed("ev_1", "Sound Bath", None, "2026-08-01", "Studio A")
        content = f"<p>Intro</p>{product.to_html()}<p>More</p>{event.to_html()}"
        assert parse_embeds(content) == [product, event]

    def test_ignores_other_divs(self):
        assert parse_embeds('<div class="note" data-type="callout"></div><p>x</p>') == []

    def test_bare_attribute_names(self):
        [embed] = parse_embeds('<div data-type="product-embed" productid="p9" productprice="oops"></div>')
        assert embed.product_id == "p9"
        assert embed.product_price == Decimal("0")

    def test_empty_content(self):
        assert parse_embeds("") == []

    def test_document_walk(self):
        doc = {
            "type": "doc",
            "content": [
                {"type": "paragraph", "content": [{"type": "text", "text": "hi"}]},
                {"type": "productEmbed", "attrs": {"productId": "p1", "productPrice": 10}},
                {
                    "type": "blockquote",
                    "content": [{"type": "eventEmbed", "attrs": {"eventId": "e1", "eventTitle": "Retreat"}}],
                },
            ],
        }
        embeds = embeds_from_document(doc)
        assert embeds == [
            ProductEmbed(product_id="p1", product_price=Decimal("10")),
            EventEmbed(event_id="e1", event_title="Retreat"),
        ]


class TestExtractIds:
    def test_distinct_in_order(self):
        embeds = [
            ProductEmbed("p2"),
            EventEmbed("e1"),
            ProductEmbed("p1"),
            ProductEmbed("p2"),
            ProductEmbed(None),
        ]
        assert extract_embed_ids(embeds) == {"products": ["p2", "p1"], "events": ["e1"]}


class TestResolve:
    def test_existing_and_missing_records(self):
        store = InMemoryStore()
        store.insert_record("products", {"id": "p1", "title": "Rose Quartz"})
        store.insert_record("events", {"id": "e1", "title": "Sound Bath"})
        embeds = [ProductEmbed("p1"), ProductEmbed("p_gone"), EventEmbed("e1"), EventEmbed("e_gone")]

        resolved = resolve_embeds(store, embeds)
        assert [p["title"] for p in resolved["products"]] == ["Rose Quartz"]
        assert [e["title"] for e in resolved["events"]] == ["Sound Bath"]
        assert resolved["missing"] == {"products": ["p_gone"], "events": ["e_gone"]}


class TestLookupRoute:
    def test_html(self, client, admin_headers, store):
        store.insert_record("products", {"id": "p1", "title": "Rose Quartz"})
        html = f"<p>Intro</p>{ProductEmbed('p1', 'Rose Quartz').to_html()}{EventEmbed('e9').to_html()}"
        resp = client.post("/admin/content/embeds", json={"html": html}, headers=admin_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert [node["type"] for node in body["embeds"]] == ["productEmbed", "eventEmbed"]
        assert body["products"][0]["id"] == "p1"
        assert body["missing"] == {"products": [], "events": ["e9"]}

    def test_document(self, client, admin_headers):
        doc = {"type": "doc", "content": [{"type": "productEmbed", "attrs": {"productId": "p2"}}]}
        resp = client.post("/admin/content/embeds", json={"doc": doc}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["missing"]["products"] == ["p2"]

    def test_requires_content(self, client, admin_headers):
        resp = client.post("/admin/content/embeds", json={}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Provide html or doc"}
