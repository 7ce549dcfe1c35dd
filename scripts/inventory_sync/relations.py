"""
relations.py – Parent/child relation edges between posts and taxonomy terms
(JetEngine ``jet-rel`` endpoint).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .client import RELATIONS_ENDPOINT, WordPressClient
from .exceptions import RequestError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelationIds:
    """Relation-type ids configured on the WordPress side.

    The post → make and post → model edges may share one relation type (both
    are 3 on the reference site); ``link_content_object`` keeps both children
    in that case.
    """

    make_model: int = 3
    content_make: int = 3
    content_model: int = 3
    branch_content: int = 52


# JetEngine store modes: "replace" sets the child set of (parent, relation),
# "update" adds to it.
STORE_REPLACE = "replace"
STORE_APPEND = "update"


def set_relation(
    client: WordPressClient,
    parent_id: int,
    child_id: int,
    relation_id: int,
    store_items_type: str = STORE_REPLACE,
) -> bool:
    """
    Assert the edge parent → child for *relation_id*.

    With the default "replace" mode the call defines the child set of
    (parent, relation) instead of adding to it. Failures are logged and
    reported as False.
    """
    payload = {
        "parent_id": parent_id,
        "child_id": child_id,
        "context": "parent",
        "store_items_type": store_items_type,
        "relation_id": relation_id,
    }
    try:
        client.request("POST", f"{RELATIONS_ENDPOINT}/{relation_id}", payload)
    except RequestError as exc:
        logger.warning(
            "Relation %s: %s -> %s failed: %s", relation_id, parent_id, child_id, exc
        )
        return False
    logger.debug("Relation %s: %s -> %s asserted", relation_id, parent_id, child_id)
    return True


def link_content_object(
    client: WordPressClient,
    post_id: int,
    make_id: Optional[int],
    model_id: Optional[int],
    branch_id: Optional[int],
    relation_ids: Optional[RelationIds] = None,
) -> int:
    """
    Assert the relation edges of one post:

      make   → model   (make is the parent)
      post   → make
      post   → model
      branch → post

    Edges with a missing endpoint are skipped; each edge is attempted even if
    an earlier one failed. The first edge asserted on a (parent, relation)
    pair replaces its child set, later ones on the same pair are appended so
    a shared relation type keeps every child. Returns the number of edges
    asserted.
    """
    ids = relation_ids or RelationIds()
    edges = [
        ("make→model", make_id, model_id, ids.make_model),
        ("post→make", post_id, make_id, ids.content_make),
        ("post→model", post_id, model_id, ids.content_model),
        ("branch→post", branch_id, post_id, ids.branch_content),
    ]

    asserted = 0
    replaced: set[tuple[int, int]] = set()
    for label, parent_id, child_id, relation_id in edges:
        if not parent_id or not child_id:
            logger.info("Skipping %s relation for post %s: missing id", label, post_id)
            continue
        key = (parent_id, relation_id)
        mode = STORE_APPEND if key in replaced else STORE_REPLACE
        if set_relation(client, parent_id, child_id, relation_id, mode):
            replaced.add(key)
            asserted += 1
    return asserted
