"""
Auto-resolution of open shipment actions.

A newly classified document closes every open action of its shipment whose
auto_resolve_on lists the document's type, or one of whose
auto_resolve_keywords appears in the email text. Actions opened from a
recommendation carry their own triggers; older actions without recorded
triggers use the template of their document type.
"""

import logging
from typing import Optional

from ..config import ActionConfig
from ..config_cache import ConfigCache
from ..schemas.actions import AutoResolveResult
from ..state_store import StateStore
from .priority import keyword_in_text

logger = logging.getLogger(__name__)


class AutoResolveMatcher:
    """
    Closes open actions that a new document makes obsolete.

    Store errors propagate to the caller.
    """

    def __init__(
        self, store: StateStore, cache: ConfigCache, config: Optional[ActionConfig] = None
    ):
        self.store = store
        self.cache = cache
        self.config = config or ActionConfig()

    def check_auto_resolve(
        self,
        shipment_id: str,
        incoming_document_type: str,
        subject: str = "",
        body: str = "",
    ) -> AutoResolveResult:
        """
        Resolve matching open actions of a shipment.

        Only actions this call actually completed are reported, so
        repeating the call returns an empty result.
        """
        open_actions = self.store.list_open_actions(shipment_id)
        if not open_actions:
            return AutoResolveResult(resolved=False, resolved_action_ids=[])

        snapshot = self.cache.ensure_loaded()
        resolved_ids: list[int] = []

        for action in open_actions:
            if action.has_resolution_triggers:
                resolve_on = action.auto_resolve_on or ()
                keywords = action.auto_resolve_keywords or ()
            else:
                template = snapshot.template_for_document_type(
                    action.document_type, self.config.direction
                )
                if template is None:
                    continue
                resolve_on = template.auto_resolve_on
                keywords = template.auto_resolve_keywords

            matches = incoming_document_type in resolve_on or keyword_in_text(
                keywords, subject, body
            )
            if not matches:
                continue

            note = f" [Auto-resolved by {incoming_document_type}]"
            if self.store.complete_action(action.id, note):
                logger.info(
                    f"[{shipment_id}] Action {action.id} ({action.document_type}) "
                    f"auto-resolved by {incoming_document_type}"
                )
                resolved_ids.append(action.id)

        return AutoResolveResult(resolved=bool(resolved_ids), resolved_action_ids=resolved_ids)
