"""Static reference tables consumed by the risk aggregator."""
from dataclasses import dataclass, fields
from typing import Any, Dict, Tuple, cast

import os
import yaml

HIGH_RISK_COUNTRIES: Tuple[str, ...] = (
    "Russia",
    "China",
    "North Korea",
    "Iran",
    "Syria",
    "Belarus",
    "Nigeria",
    "Venezuela",
)

MEDIUM_RISK_COUNTRIES: Tuple[str, ...] = (
    "Ukraine",
    "Vietnam",
    "Indonesia",
    "Pakistan",
    "Brazil",
    "India",
    "Romania",
    "Turkey",
    "Philippines",
    "Bangladesh",
)

TRUSTED_ISPS: Tuple[str, ...] = (
    "Amazon",
    "Google",
    "Microsoft",
    "Cloudflare",
    "Akamai",
    "Fastly",
    "DigitalOcean",
    "Linode",
    "Oracle",
    "IBM",
    "Hetzner",
    "OVH",
    "Vercel",
    "GitHub",
)

UNTRUSTED_ISPS: Tuple[str, ...] = (
    "Bulletproof",
    "Stark Industries",
    "Frantech",
    "Alexhost",
    "Shinjiru",
    "Media Land",
    "Proton66",
    "Aeza",
)

TRUSTED_ISSUERS: Tuple[str, ...] = (
    "Let's Encrypt",
    "DigiCert",
    "Sectigo",
    "GlobalSign",
    "Google Trust Services",
    "Amazon",
    "Microsoft",
    "Entrust",
    "GoDaddy",
    "IdenTrust",
    "Cloudflare",
    "ZeroSSL",
    "Buypass",
)

UNTRUSTED_ISSUERS: Tuple[str, ...] = (
    "Self-Signed",
    "localhost",
    "WoSign",
    "StartCom",
    "CNNIC",
)

TRUSTED_EMAIL_PROVIDERS: Tuple[str, ...] = (
    "google.com",
    "googlemail.com",
    "outlook.com",
    "protection.outlook.com",
    "microsoft.com",
    "yahoodns.net",
    "zoho.com",
    "protonmail.ch",
    "icloud.com",
    "mimecast.com",
    "pphosted.com",
    "messagingengine.com",
    "amazonaws.com",
)

RISKY_MX_TLDS: Tuple[str, ...] = (".tk", ".ml", ".ga")


@dataclass(frozen=True)
class ReferenceData:
    """Immutable reference tables; defaults are the module-level tables."""
    high_risk_countries: Tuple[str, ...] = HIGH_RISK_COUNTRIES
    medium_risk_countries: Tuple[str, ...] = MEDIUM_RISK_COUNTRIES
    trusted_isps: Tuple[str, ...] = TRUSTED_ISPS
    untrusted_isps: Tuple[str, ...] = UNTRUSTED_ISPS
    trusted_issuers: Tuple[str, ...] = TRUSTED_ISSUERS
    untrusted_issuers: Tuple[str, ...] = UNTRUSTED_ISSUERS
    trusted_email_providers: Tuple[str, ...] = TRUSTED_EMAIL_PROVIDERS
    risky_mx_tlds: Tuple[str, ...] = RISKY_MX_TLDS

    @staticmethod
    def load(path: str) -> "ReferenceData":
        """Build tables from a YAML mapping; missing keys keep their defaults."""
        if not os.path.exists(path):
            raise FileNotFoundError(f"Reference file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            raw_any: Any = yaml.safe_load(f) or {}
        if not isinstance(raw_any, dict):
            raise ValueError("Reference YAML must be a mapping")
        raw: Dict[str, Any] = cast(Dict[str, Any], raw_any)

        known = {f.name for f in fields(ReferenceData)}
        unknown = set(raw) - known
        if unknown:
            raise ValueError(f"Unknown reference tables: {', '.join(sorted(unknown))}")

        overrides: Dict[str, Tuple[str, ...]] = {}
        for key, value in raw.items():
            if not isinstance(value, list):
                raise ValueError(f"Reference table '{key}' must be a list")
            overrides[key] = tuple(str(v) for v in value)
        return ReferenceData(**overrides)
