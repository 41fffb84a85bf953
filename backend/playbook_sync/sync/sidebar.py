"""Index registration for newly created SOPs.

The playbook site lists documents in ``sidebars.js``, a semi-structured
JavaScript file. Registration is a best-effort text transform behind the
``DocumentIndex`` protocol, so a structured index format can replace it
without touching the pipeline. Failing to find an insertion point is a
warning: the document itself is still committed.
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

from playbook_sync.config import settings

logger = logging.getLogger(__name__)

_ITEM_INDENT = "          "
_CLOSE_INDENT = "        "


class DocumentIndex(Protocol):
    """Something that can register a new document id under a module."""

    def register(self, content: str, module: str, doc_id: str) -> str:
        """Return the updated index text (unchanged if no insertion point)."""
        ...


class SidebarsJsIndex:
    """Docusaurus ``sidebars.js`` editor.

    Expects module categories shaped like::

        {
          type: 'category',
          label: 'Module 4: Cold Email',
          link: {type: 'doc', id: 'sops/module-4-cold-email/index'},
          items: [
            'sops/module-4-cold-email/sop-4-1-offer',
          ],
        },
    """

    def __init__(self, item_prefix: str | None = None) -> None:
        self.item_prefix = (item_prefix if item_prefix is not None else settings.index_item_prefix).strip("/")

    def item_id(self, module: str, doc_id: str) -> str:
        return f"{self.item_prefix}/{module}/{doc_id}" if self.item_prefix else f"{module}/{doc_id}"

    def register(self, content: str, module: str, doc_id: str) -> str:
        new_entry = f"\n{_ITEM_INDENT}'{self.item_id(module, doc_id)}',"

        # Primary: the module's own `items: [ ... ]` list
        module_re = "[-/]".join(re.escape(part) for part in re.split(r"[-/]", module))
        primary = re.compile(rf"({module_re}[^\]]*items:\s*\[)([^\]]*)\]", re.DOTALL)
        match = primary.search(content)
        if match:
            existing = match.group(2).rstrip()
            separator = "," if existing and not existing.endswith(",") else ""
            replacement = f"{match.group(1)}{existing}{separator}{new_entry}\n{_CLOSE_INDENT}]"
            return content[: match.start()] + replacement + content[match.end():]

        # Fallback: any existing entry for this module, up to the closing bracket
        item_re = re.escape(self.item_id(module, ""))
        fallback = re.compile(rf"('{item_re}[^']*',?)([^\]]*?)\]", re.DOTALL)
        match = fallback.search(content)
        if match:
            block = match.group(0)
            before_bracket = block[: block.rfind("]")].rstrip()
            separator = "," if not before_bracket.endswith(",") else ""
            replacement = f"{before_bracket}{separator}{new_entry}\n{_CLOSE_INDENT}]"
            return content[: match.start()] + replacement + content[match.end():]

        logger.warning("Could not find module section in sidebars.js for '%s'", module)
        return content
