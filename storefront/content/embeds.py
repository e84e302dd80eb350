"""Product and event embeds inside blog post content.

Blog posts are stored as rich-text HTML (and editor JSON). Two block-level
atom nodes reference catalog records:

- ``productEmbed``: productId, productTitle, productImage, productPrice
- ``eventEmbed``: eventId, eventTitle, eventImage, eventDate, eventLocation

In HTML they are ``<div data-type="product-embed" ...>`` and
``<div data-type="event-embed" ...>`` with one ``data-*`` attribute per node
attribute. This module renders them, parses them back out of stored HTML or
editor JSON, and collects the referenced ids for catalog lookups.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Union

from bs4 import BeautifulSoup

from storefront.store.base import RecordStore

PRODUCT_EMBED = "product-embed"
EVENT_EMBED = "event-embed"


def _data_attr(name: str) -> str:
    """``productTitle`` -> ``data-product-title``."""
    return "data-" + re.sub(r"(?<!^)(?=[A-Z])", "-", name).lower()


def _render(data_type: str, attrs: dict[str, Any]) -> str:
    parts = [f'data-type="{data_type}"']
    for name, value in attrs.items():
        if value is None:
            continue
        parts.append(f'{_data_attr(name)}="{html.escape(str(value), quote=True)}"')
    return f"<div {' '.join(parts)}></div>"


def _attr(attrs: dict[str, str | None], name: str) -> str | None:
    # data-* form first, then the bare lower-cased attribute name
    value = attrs.get(_data_attr(name))
    if value is None:
        value = attrs.get(name.lower())
    return value


@dataclass
class ProductEmbed:
    product_id: str | None = None
    product_title: str | None = None
    product_image: str | None = None
    product_price: Decimal = Decimal("0")

    node_type = "productEmbed"
    data_type = PRODUCT_EMBED

    def attrs(self) -> dict[str, Any]:
        return {
            "productId": self.product_id,
            "productTitle": self.product_title,
            "productImage": self.product_image,
            "productPrice": self.product_price,
        }

    def to_html(self) -> str:
        return _render(self.data_type, self.attrs())

    @classmethod
    def from_attrs(cls, get) -> ProductEmbed:
        return cls(
            product_id=get("productId"),
            product_title=get("productTitle"),
            product_image=get("productImage"),
            product_price=_price(get("productPrice")),
        )


@dataclass
class EventEmbed:
    event_id: str | None = None
    event_title: str | None = None
    event_image: str | None = None
    event_date: str | None = None
    event_location: str | None = None

    node_type = "eventEmbed"
    data_type = EVENT_EMBED

    def attrs(self) -> dict[str, Any]:
        return {
            "eventId": self.event_id,
            "eventTitle": self.event_title,
            "eventImage": self.event_image,
            "eventDate": self.event_date,
            "eventLocation": self.event_location,
        }

    def to_html(self) -> str:
        return _render(self.data_type, self.attrs())

    @classmethod
    def from_attrs(cls, get) -> EventEmbed:
        return cls(**{f.name: get(_camel(f.name)) for f in fields(cls)})


Embed = Union[ProductEmbed, EventEmbed]

_BY_DATA_TYPE = {PRODUCT_EMBED: ProductEmbed, EVENT_EMBED: EventEmbed}
_BY_NODE_TYPE = {ProductEmbed.node_type: ProductEmbed, EventEmbed.node_type: EventEmbed}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _price(value: Any) -> Decimal:
    if value in (None, ""):
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


def parse_embeds(content: str) -> list[Embed]:
    """All embeds in an HTML fragment, in document order."""
    soup = BeautifulSoup(content or "", "html.parser")
    selector = ", ".join(f'div[data-type="{data_type}"]' for data_type in _BY_DATA_TYPE)
    embeds: list[Embed] = []
    for tag in soup.select(selector):
        embed_cls = _BY_DATA_TYPE[tag["data-type"]]
        embeds.append(embed_cls.from_attrs(lambda name: _attr(tag.attrs, name)))
    return embeds


def embeds_from_document(doc: dict[str, Any]) -> list[Embed]:
    """All embeds in an editor JSON document (``{"type": "doc", "content": [...]}``)."""
    found: list[Embed] = []

    def walk(nodes: Iterable[dict[str, Any]]) -> None:
        for node in nodes:
            embed_cls = _BY_NODE_TYPE.get(node.get("type") or "")
            if embed_cls is not None:
                node_attrs = node.get("attrs") or {}
                found.append(embed_cls.from_attrs(node_attrs.get))
            walk(node.get("content") or [])

    walk([doc])
    return found


def to_node(embed: Embed) -> dict[str, Any]:
    """Editor JSON node for an embed."""
    return {"type": embed.node_type, "attrs": embed.attrs()}


def extract_embed_ids(embeds: Iterable[Embed]) -> dict[str, list[str]]:
    """Distinct referenced ids, keyed ``products`` and ``events``, in first-seen order."""
    ids: dict[str, list[str]] = {"products": [], "events": []}
    for embed in embeds:
        if isinstance(embed, ProductEmbed):
            key, value = "products", embed.product_id
        else:
            key, value = "events", embed.event_id
        if value and value not in ids[key]:
            ids[key].append(value)
    return ids


def resolve_embeds(store: RecordStore, embeds: Iterable[Embed]) -> dict[str, Any]:
    """Load the catalog records an embed list points at.

    Ids with no record are reported under ``missing`` so the editor can flag
    embeds whose product or event was deleted.
    """
    ids = extract_embed_ids(embeds)
    resolved: dict[str, Any] = {"products": [], "events": [], "missing": {"products": [], "events": []}}
    for table, wanted in ids.items():
        for record_id in wanted:
            record = store.get_record(table, record_id)
            if record is None:
                resolved["missing"][table].append(record_id)
            else:
                resolved[table].append(record)
    return resolved
