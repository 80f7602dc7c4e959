"""
Split matched images into the ones to keep and the ones to delete.

Images are ordered newest first by creation time. Images with identical
creation times keep the order the catalog returned them in; there is no
secondary sort key, so the deletion order among such images follows the
listing order and is not guaranteed to be the same across runs.
"""

from typing import Sequence

from image_retention.models import ImageRecord, RetentionPlan


def order_newest_first(images: Sequence[ImageRecord]):
    # sorted() is stable, also with reverse=True
    return sorted(images, key=lambda image: image.created_at, reverse=True)


def classify(images: Sequence[ImageRecord], keep_releases: int) -> RetentionPlan:
    """Keep the `keep_releases` most recent images and purge the rest.

    A non-positive `keep_releases` purges every image.
    """
    ordered = order_newest_first(images)
    keep = max(keep_releases, 0)
    return RetentionPlan(retain=ordered[:keep], purge=ordered[keep:])
