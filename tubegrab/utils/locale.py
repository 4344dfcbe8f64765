from typing import List, Optional, Tuple
from urllib.parse import urlparse

from tubegrab.config.settings import config


def parse_accept_language(header: str) -> List[str]:
    """Primary language tags ordered by q-value, header order kept on ties"""
    weighted: List[Tuple[float, int, str]] = []
    for position, part in enumerate(header.split(",")):
        tag, _, params = part.strip().partition(";")
        language = tag.split("-")[0].strip().lower()
        if not language:
            continue
        quality = 1.0
        if params.strip().startswith("q="):
            try:
                quality = float(params.strip()[2:])
            except ValueError:
                quality = 0.0
        weighted.append((-quality, position, language))
    return [language for _, _, language in sorted(weighted)]


def get_locale(accept_language: Optional[str] = None) -> str:
    """Best supported locale for an Accept-Language header"""
    if accept_language:
        for language in parse_accept_language(accept_language):
            if language in config.i18n.supported_locales:
                return language
    return config.i18n.default_locale


def safe_url_for_log(url: str) -> str:
    """Strip query strings (signatures, tokens) before a URL reaches the logs"""
    try:
        parsed = urlparse(url)
    except ValueError:
        return "invalid_url"

    base_url = f"{parsed.scheme}://{parsed.netloc}{parsed.path}"
    if parsed.query:
        return f"{base_url}?..."
    return base_url
