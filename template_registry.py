"""Named invoice style configurations and the process-wide active template."""

from __future__ import annotations

import copy
import logging
import uuid

from store import TEMPLATES_KEY, ACTIVE_TEMPLATE_KEY

logger = logging.getLogger(__name__)

CUSTOM_PREFIX = "custom-"

DEFAULT_TEMPLATES = [
    {
        "id": "classic",
        "name": "Classic",
        "description": "Simple and professional invoice design",
        "is_default": True,
        "settings": {
            "primary_color": "#4F46E5",
            "font_family": "Inter, sans-serif",
            "show_logo": True,
            "show_payment_details": True,
            "show_signature": False,
            "footer_text": "Thank you for your business",
        },
    },
    {
        "id": "modern",
        "name": "Modern",
        "description": "Sleek, minimal design with accent color",
        "is_default": False,
        "settings": {
            "primary_color": "#0EA5E9",
            "font_family": "Poppins, sans-serif",
            "show_logo": True,
            "show_payment_details": True,
            "show_signature": True,
            "footer_text": "Payment due within 30 days",
        },
    },
    {
        "id": "professional",
        "name": "Professional",
        "description": "Corporate style with detailed sections",
        "is_default": False,
        "settings": {
            "primary_color": "#374151",
            "font_family": "Roboto, sans-serif",
            "show_logo": True,
            "show_payment_details": True,
            "show_signature": True,
            "footer_text": "Terms & Conditions Apply",
        },
    },
]

DEFAULT_SETTINGS = DEFAULT_TEMPLATES[0]["settings"]


def is_custom(template: dict) -> bool:
    return template["id"].startswith(CUSTOM_PREFIX) and not template.get("is_default")


class TemplateRegistry:
    """Templates plus the active-template pointer, persisted as a pair.

    Every mutation rebuilds the whole template list and writes it together
    with the active id in a single store transaction.
    """

    def __init__(self, store):
        self.store = store

    def _load(self) -> tuple[list[dict], str | None]:
        templates = self.store.get(TEMPLATES_KEY)
        active_id = self.store.get(ACTIVE_TEMPLATE_KEY)
        if not templates:
            templates = copy.deepcopy(DEFAULT_TEMPLATES)
            active_id = self._default_id(templates)
            self._save(templates, active_id)
            logger.info(f"Seeded {len(templates)} built-in templates")
        return templates, active_id

    def _save(self, templates: list[dict], active_id: str | None) -> None:
        self.store.set_many({TEMPLATES_KEY: templates, ACTIVE_TEMPLATE_KEY: active_id})

    @staticmethod
    def _default_id(templates: list[dict]) -> str | None:
        for t in templates:
            if t.get("is_default"):
                return t["id"]
        return templates[0]["id"] if templates else None

    @staticmethod
    def _find(templates: list[dict], template_id: str) -> int:
        for index, t in enumerate(templates):
            if t["id"] == template_id:
                return index
        return -1

    def list(self) -> list[dict]:
        templates, _ = self._load()
        return templates

    def get(self, template_id: str) -> dict | None:
        templates, _ = self._load()
        index = self._find(templates, template_id)
        return templates[index] if index != -1 else None

    @property
    def active_id(self) -> str | None:
        return self.get_active()["id"]

    def get_active(self) -> dict:
        """Active template, else the default one, else the first one."""
        templates, active_id = self._load()
        index = self._find(templates, active_id) if active_id else -1
        if index != -1:
            return templates[index]
        fallback = self._find(templates, self._default_id(templates))
        return templates[fallback]

    def set_active(self, template_id: str) -> bool:
        templates, _ = self._load()
        if self._find(templates, template_id) == -1:
            logger.warning(f"Cannot activate unknown template {template_id}")
            return False
        self._save(templates, template_id)
        logger.info(f"Active template set to {template_id}")
        return True

    def update_settings(self, template_id: str, settings_updates: dict) -> bool:
        templates, active_id = self._load()
        index = self._find(templates, template_id)
        if index == -1:
            return False
        template = dict(templates[index])
        template["settings"] = {**template.get("settings", {}), **settings_updates}
        templates[index] = template
        self._save(templates, active_id)
        return True

    def update(self, template_id: str, changes: dict) -> bool:
        templates, active_id = self._load()
        index = self._find(templates, template_id)
        if index == -1:
            return False
        changes = {k: v for k, v in changes.items() if k not in ("id", "is_default")}
        templates[index] = {**templates[index], **changes}
        self._save(templates, active_id)
        return True

    def create(self, data: dict) -> str:
        """Add a custom template and make it the active one."""
        templates, _ = self._load()
        template_id = f"{CUSTOM_PREFIX}{uuid.uuid4().hex[:12]}"
        template = {
            "name": "Custom",
            "description": "",
            **data,
            "id": template_id,
            "is_default": False,
        }
        template["settings"] = {**DEFAULT_SETTINGS, **(data.get("settings") or {})}
        templates = templates + [template]
        self._save(templates, template_id)
        logger.info(f"Created template {template_id} ({template['name']})")
        return template_id

    def delete(self, template_id: str) -> bool:
        """Remove a custom template. Built-in and default templates stay."""
        templates, active_id = self._load()
        index = self._find(templates, template_id)
        if index == -1 or not is_custom(templates[index]):
            return False

        remaining = templates[:index] + templates[index + 1:]
        if active_id == template_id:
            active_id = self._default_id(remaining)
        self._save(remaining, active_id)
        logger.info(f"Deleted template {template_id}")
        return True
