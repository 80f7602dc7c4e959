"""Paginated listing of the images subject to retention."""

from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

from image_retention.error_utils import RunCancelledError, create_catalog_error
from image_retention.logging_utils import get_logger
from image_retention.models import ImageRecord, RetentionFilter

logger = get_logger(__name__)


def extract_images(page: Dict[str, Any]) -> List[ImageRecord]:
    """Decode every image entry of a listing page.

    Raises:
        ValueError: if the page or one of its entries cannot be decoded
    """
    if not isinstance(page, dict) or not isinstance(page.get("images"), list):
        raise ValueError("listing page has no 'images' array")
    return [ImageRecord.from_catalog(doc) for doc in page["images"]]


def next_marker(page: Dict[str, Any]) -> Optional[str]:
    """Return the marker for the following page, or None on the last page.

    Raises:
        ValueError: if a next link is present but carries no marker
    """
    link = page.get("next")
    if not link:
        return None
    markers = parse_qs(urlparse(link).query).get("marker")
    if not markers:
        raise ValueError(f"next link has no marker: {link}")
    return markers[0]


def list_images(client, retention_filter: RetentionFilter, cancel_event=None) -> List[ImageRecord]:
    """Collect every image whose name equals the filter, across all pages.

    Duplicates returned by the catalog are kept as-is.

    Args:
        client: Catalog client exposing fetch_image_page(name, marker)
        retention_filter: Name filter for the image family
        cancel_event: Optional threading.Event; when set the listing stops

    Returns:
        List of ImageRecord (empty when nothing matches)

    Raises:
        CatalogError: if a page cannot be fetched or decoded
        RunCancelledError: if cancel_event is set
    """
    images: List[ImageRecord] = []
    marker = None
    page_number = 0

    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise RunCancelledError("listing")

        page_number += 1
        try:
            page = client.fetch_image_page(retention_filter.name, marker)
            records = extract_images(page)
            marker = next_marker(page)
        except Exception as e:
            raise create_catalog_error(retention_filter.name, page_number, e) from e

        logger.debug(f"Page {page_number}: {len(records)} image(s) named '{retention_filter.name}'")
        images.extend(records)

        if marker is None:
            break

    logger.info(f"Found {len(images)} image(s) named '{retention_filter.name}' in {page_number} page(s)")
    return images
