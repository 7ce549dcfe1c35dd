"""
terms.py – Find-or-create resolution of taxonomy terms (makes, models,
branches, classifications) by slug.
"""

import logging
import re
import unicodedata
from typing import Any, Optional

from .client import TAXONOMY_BASE, WordPressClient
from .exceptions import RequestError
from .models import parse_id

logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def generate_slug(text: str) -> str:
    """
    Build a URL-safe slug from a term name.
    'Mercedes Benz' → 'mercedes-benz', 'CR-V / EX' → 'cr-v-ex', 'Citroën' → 'citroen'
    """
    folded = unicodedata.normalize("NFKD", str(text)).encode("ascii", "ignore").decode("ascii")
    slug = _NON_ALNUM_RE.sub("-", folded.lower())
    return slug.strip("-")


def resolve_term(
    client: WordPressClient,
    taxonomy: str,
    name: Any,
    parent: Optional[int] = None,
) -> Optional[int]:
    """
    Return the id of the term *name* in *taxonomy*, creating it if absent.

    The slug is the de-duplication key: an existing term with the same slug
    always wins over creating a new one. Returns None (and logs) for an empty
    or non-string name, or when the API fails.
    """
    if not isinstance(name, str) or not name.strip():
        logger.warning("Cannot resolve %s term from invalid name %r", taxonomy, name)
        return None

    clean_name = name.replace("/", "-").strip()
    slug = generate_slug(clean_name)
    if not slug:
        logger.warning("Term name %r in %s has no usable characters", name, taxonomy)
        return None

    endpoint = f"{TAXONOMY_BASE}/{taxonomy}"
    try:
        terms = client.request("GET", endpoint, params={"slug": slug})
        if not isinstance(terms, list) or not all(isinstance(t, dict) for t in terms):
            logger.error("Unexpected %s search response for '%s': %r", taxonomy, slug, terms)
            return None
        if terms:
            term_id = parse_id(terms[0].get("id"))
            if term_id is not None:
                logger.debug("Found %s term '%s' (id=%s)", taxonomy, slug, term_id)
                return term_id

        data = {"name": clean_name, "slug": slug}
        if parent:
            data["parent"] = parent
        created = client.request("POST", endpoint, data)
    except RequestError as exc:
        logger.error("Term lookup/create failed for '%s' in %s: %s", name, taxonomy, exc)
        return None

    term_id = parse_id(created.get("id")) if isinstance(created, dict) else None
    if term_id is None:
        logger.error("Creating %s term '%s' returned no id: %r", taxonomy, clean_name, created)
        return None
    logger.info("Created %s term '%s' (id=%s)", taxonomy, clean_name, term_id)
    return term_id
