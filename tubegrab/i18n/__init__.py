import functools
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from tubegrab.config.settings import config
from tubegrab.utils.locale import get_locale

logger = logging.getLogger(__name__)

LOCALES_DIR = Path(__file__).resolve().parent.parent / "locales"

Translate = Callable[..., str]


class I18n:
    """Client-facing messages from `locales/<code>.json`, looked up by dotted key"""

    def __init__(self, locales_dir: Path = LOCALES_DIR):
        self.catalogs: Dict[str, Dict[str, Any]] = {}
        self.default_locale = config.i18n.default_locale
        self.load_catalogs(locales_dir)

    def load_catalogs(self, locales_dir: Path) -> None:
        if not locales_dir.is_dir():
            logger.warning(f"Locales directory not found at {locales_dir}")
            return

        for path in sorted(locales_dir.glob("*.json")):
            try:
                self.catalogs[path.stem] = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.error(f"Skipping locale {path.stem}: {e}")

    def lookup(self, key: str, locale: str) -> Optional[str]:
        node: Any = self.catalogs.get(locale)
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node if isinstance(node, str) else None

    def get(self, key: str, locale: Optional[str] = None, **kwargs) -> str:
        """
        Translate `key` for `locale`, falling back to the default locale and
        then to the key itself. Placeholders are filled from kwargs.
        """
        template = None
        for candidate in (locale, self.default_locale, "en"):
            if candidate:
                template = self.lookup(key, candidate)
                if template is not None:
                    break
        if template is None:
            return key

        try:
            return template.format(**kwargs)
        except (KeyError, IndexError):
            return template

    def translator(self, accept_language: Optional[str] = None) -> Translate:
        """`_(key, **kwargs)` bound to the best match for an Accept-Language header"""
        return functools.partial(self.get, locale=get_locale(accept_language))


i18n = I18n()
