"""Catalog client for fetching products from a Shopify store.

Talks to the Shopify Admin GraphQL API and normalizes products (or their
variants) into ProductRecord instances for validation and rendering.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
import structlog

from feedsync.domain.value_objects import FeedSettings, ProductRecord
from feedsync.infrastructure.config import settings

logger = structlog.get_logger()

PRODUCT_GID_PREFIX = "gid://shopify/Product/"
DEFAULT_TITLE = "Default Title"


# ============================================================================
# Catalog Contract
# ============================================================================


class CatalogSource(Protocol):
    """Anything that can produce the product records of a feed."""

    async def fetch_products(
        self, selection: FeedSettings, limit: int
    ) -> list[ProductRecord]:
        """Fetch at most ``limit`` products matching the feed selection."""
        ...


class CatalogClientError(Exception):
    """Error from catalog API call."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


# ============================================================================
# GraphQL Documents
# ============================================================================


PRODUCT_FIELDS = """
fragment ProductFields on Product {
  id
  title
  handle
  vendor
  description
  featuredImage { url }
  metafields(first: 50) { nodes { namespace key value } }
  variants(first: 100) {
    nodes {
      id
      title
      price
      sku
      barcode
      availableForSale
      image { url }
    }
  }
}
"""

PRODUCTS_QUERY = (
    """
query Products($first: Int!, $after: String, $query: String) {
  products(first: $first, after: $after, query: $query) {
    pageInfo { hasNextPage endCursor }
    nodes { ...ProductFields }
  }
}
"""
    + PRODUCT_FIELDS
)

NODES_QUERY = (
    """
query ProductsById($ids: [ID!]!) {
  nodes(ids: $ids) { ...ProductFields }
}
"""
    + PRODUCT_FIELDS
)


# ============================================================================
# Normalization
# ============================================================================


def legacy_id(gid: str) -> str:
    """Numeric tail of a Shopify global ID ("gid://shopify/Product/42" -> "42")."""
    return gid.rsplit("/", 1)[-1] if gid else ""


def product_gid(product_id: str) -> str:
    """Global ID for a product given either form."""
    if product_id.startswith("gid://"):
        return product_id
    return f"{PRODUCT_GID_PREFIX}{product_id}"


@dataclass
class ShopifyProduct:
    """Product node from the Admin GraphQL API."""

    id: str
    title: str
    handle: str
    vendor: str
    description: str
    image_url: str
    metafields: dict[str, str] = field(default_factory=dict)
    variants: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ShopifyProduct":
        """Create from a GraphQL product node.

        Args:
            data: Product node.

        Returns:
            ShopifyProduct instance.
        """
        image = data.get("featuredImage") or {}
        metafields = {
            f"{m['namespace']}.{m['key']}": m.get("value") or ""
            for m in (data.get("metafields") or {}).get("nodes", [])
        }
        return cls(
            id=legacy_id(data["id"]),
            title=data.get("title") or "",
            handle=data.get("handle") or "",
            vendor=data.get("vendor") or "",
            description=data.get("description") or "",
            image_url=image.get("url") or "",
            metafields=metafields,
            variants=(data.get("variants") or {}).get("nodes", []),
        )

    def to_records(
        self, shop_domain: str, selection: FeedSettings
    ) -> list[ProductRecord]:
        """Project into feed records.

        Without ``include_variants`` the first variant supplies price and
        identifiers; with it each variant becomes its own record grouped
        under the product ID.
        """
        attributes = dict(selection.custom_attributes)
        for source, target in selection.metafield_mappings.items():
            if source in self.metafields:
                attributes[target] = self.metafields[source]

        link = f"https://{shop_domain}/products/{self.handle}"
        variants = self.variants or [{}]

        if not selection.include_variants:
            return [self._record(self.id, self.title, link, variants[0], selection, attributes)]

        records = []
        for variant in variants:
            variant_id = legacy_id(variant.get("id", "")) or self.id
            variant_title = variant.get("title") or ""
            title = (
                f"{self.title} - {variant_title}"
                if variant_title and variant_title != DEFAULT_TITLE
                else self.title
            )
            records.append(
                self._record(
                    variant_id,
                    title,
                    f"{link}?variant={variant_id}",
                    variant,
                    selection,
                    attributes,
                    item_group_id=self.id,
                )
            )
        return records

    def _record(
        self,
        record_id: str,
        title: str,
        link: str,
        variant: dict[str, Any],
        selection: FeedSettings,
        attributes: dict[str, str],
        item_group_id: str = "",
    ) -> ProductRecord:
        price = variant.get("price")
        image = (variant.get("image") or {}).get("url") or self.image_url
        available = variant.get("availableForSale", True)
        return ProductRecord(
            id=record_id,
            title=title,
            description=self.description,
            link=link,
            image_link=image,
            price=f"{price} {selection.currency}" if price else "",
            brand=self.vendor,
            condition="new",
            availability="in stock" if available else "out of stock",
            gtin=variant.get("barcode") or "",
            mpn=variant.get("sku") or "",
            item_group_id=item_group_id,
            custom_attributes=dict(attributes),
        )


# ============================================================================
# Shopify Client
# ============================================================================


class ShopifyCatalogClient:
    """Catalog source backed by the Shopify Admin GraphQL API.

    Example usage:
        client = ShopifyCatalogClient()
        products = await client.fetch_products(feed.settings, limit=1000)
        await client.close()
    """

    def __init__(
        self,
        shop_domain: str | None = None,
        access_token: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
        page_size: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize catalog client.

        Args:
            shop_domain: Shop domain, e.g. "store.myshopify.com".
            access_token: Admin API access token.
            api_version: Admin API version.
            timeout: Request timeout in seconds.
            page_size: Products requested per GraphQL page.
            transport: Optional httpx transport (tests).
        """
        self.shop_domain = shop_domain or settings.shopify_shop_domain
        self.access_token = access_token or settings.shopify_access_token
        self.api_version = api_version or settings.shopify_api_version
        self.timeout = timeout or settings.catalog_timeout_seconds
        self.page_size = page_size or settings.catalog_page_size
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def endpoint(self) -> str:
        """GraphQL endpoint URL."""
        return f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    "X-Shopify-Access-Token": self.access_token,
                    "Content-Type": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _execute(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run a GraphQL document and return its ``data`` member.

        Raises:
            CatalogClientError: On transport, HTTP or GraphQL errors.
        """
        try:
            client = await self._get_client()
            response = await client.post(
                self.endpoint, json={"query": query, "variables": variables}
            )
        except httpx.RequestError as e:
            logger.error(
                "Catalog API request failed",
                shop_domain=self.shop_domain,
                error=str(e),
            )
            raise CatalogClientError(f"Request failed: {str(e)}") from e

        if response.status_code != 200:
            raise CatalogClientError(
                f"Catalog API returned {response.status_code}: {response.text}",
                response.status_code,
            )

        payload = response.json()
        if payload.get("errors"):
            messages = "; ".join(e.get("message", "unknown") for e in payload["errors"])
            raise CatalogClientError(f"Catalog query failed: {messages}")

        return payload.get("data") or {}

    async def fetch_products(
        self, selection: FeedSettings, limit: int
    ) -> list[ProductRecord]:
        """Fetch products matching a feed's selection.

        Explicit product IDs are looked up directly; otherwise the catalog
        (or one collection of it) is paged through. Excluded IDs are dropped
        before the limit is applied.

        Args:
            selection: Feed settings holding the product selection.
            limit: Maximum number of records to return.

        Returns:
            At most ``limit`` product records.

        Raises:
            CatalogClientError: On API error.
        """
        excluded = {legacy_id(pid) for pid in selection.excluded_product_ids}
        records: list[ProductRecord] = []

        async for product in self._iter_products(selection):
            if product.id in excluded:
                continue
            records.extend(product.to_records(self.shop_domain, selection))
            if len(records) >= limit:
                break

        records = records[:limit]
        logger.info(
            "Fetched catalog products",
            shop_domain=self.shop_domain,
            product_count=len(records),
            limit=limit,
        )
        return records

    async def _iter_products(self, selection: FeedSettings):
        if selection.product_ids:
            ids = [product_gid(pid) for pid in selection.product_ids]
            for start in range(0, len(ids), self.page_size):
                data = await self._execute(
                    NODES_QUERY, {"ids": ids[start : start + self.page_size]}
                )
                for node in data.get("nodes") or []:
                    # Deleted products come back as null
                    if node:
                        yield ShopifyProduct.from_api_response(node)
            return

        variables: dict[str, Any] = {"first": self.page_size, "after": None}
        if selection.collection_id:
            variables["query"] = f"collection_id:{legacy_id(selection.collection_id)}"

        while True:
            data = await self._execute(PRODUCTS_QUERY, variables)
            connection = data.get("products") or {}
            for node in connection.get("nodes", []):
                yield ShopifyProduct.from_api_response(node)

            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return
            variables["after"] = page_info.get("endCursor")
