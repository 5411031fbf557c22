"""URL pattern detection for look-alike domains and phishing URL shapes."""

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any

from phishlens.validation.url_parser import ParsedURL

logger = logging.getLogger(__name__)

# Lookalike substitutions for ASCII letters, by the letter they imitate
HOMOGRAPHS: dict[str, set[str]] = {
    "a": {"а", "ɑ", "α", "@", "4"},
    "e": {"е", "é", "è", "3"},
    "i": {"і", "í", "ì", "1", "l"},
    "o": {"о", "ο", "0", "ө"},
    "p": {"р", "ρ"},
    "c": {"с", "ϲ"},
    "y": {"у", "ý"},
    "x": {"х", "χ"},
    "n": {"η", "ñ"},
    "m": {"м", "ɱ"},
    "h": {"н", "ћ"},
    "b": {"Ь", "β"},
    "d": {"ԁ", "δ"},
    "g": {"ց", "γ"},
    "s": {"ѕ", "š", "$"},
    "t": {"τ", "7"},
    "u": {"υ", "ü"},
    "v": {"ν", "ѵ"},
    "w": {"ω", "ա"},
    "z": {"ᴢ", "2"},
}
NON_ASCII_HOMOGRAPHS = {c for chars in HOMOGRAPHS.values() for c in chars if ord(c) > 127}

PATTERN_SCORES = {
    "homograph_attack": 40,
    "typosquatting": 35,
    "suspicious_tld": 20,
    "phishing_patterns": 25,
    "url_obfuscation": 15,
    "brand_impersonation": 30,
}


@dataclass(frozen=True)
class BrandImpersonation:
    likely_target: str
    confidence: float


@dataclass(frozen=True)
class UrlPatternAnalysis:
    is_homograph: bool = False
    is_typosquat: bool = False
    has_suspicious_tld: bool = False
    has_phishing_patterns: bool = False
    has_obfuscation: bool = False
    suspicious_score: int = 0
    detected_patterns: list[str] = field(default_factory=list)
    brand_impersonation: BrandImpersonation | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def levenshtein(a: str, b: str) -> int:
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(
                min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + (ca != cb))
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    return 1.0 if longest == 0 else 1 - levenshtein(a, b) / longest


class UrlPatternDetector:
    """
    Detects URL shapes common in scam links.

    Performs the following checks:
    - Homograph characters in (decoded) IDN hostnames
    - Typosquatting of high-value brands
    - Suspicious TLDs
    - Credential-harvesting paths and redirect/token parameters
    - Obfuscation (heavy percent-encoding, raw IPs, shorteners, very long URLs)
    - Brand impersonation, with the most likely target
    """

    def __init__(self):
        self.suspicious_tlds = {
            # Free domains
            "tk",
            "ml",
            "ga",
            "cf",
            "gq",
            "top",
            "click",
            "download",
            "stream",
            "science",
            "racing",
            "review",
            "party",
            "trade",
            "webcam",
            "zip",
        }

        self.brands = [
            "paypal",
            "amazon",
            "microsoft",
            "apple",
            "google",
            "facebook",
            "instagram",
            "twitter",
            "linkedin",
            "github",
            "dropbox",
            "netflix",
            "spotify",
            "banking",
            "chase",
            "wellsfargo",
            "bankofamerica",
            "citibank",
        ]

        self.path_patterns = [
            re.compile(r"/(login|signin|sign-in|log-in)[\w\-]*\.(php|html|asp|aspx)", re.I),
            re.compile(r"/(verify|verification|validate|confirm|secure)[\w\-]*\.(php|html)", re.I),
            re.compile(r"/(update|renewal|suspended|locked|blocked)[\w\-]*\.(php|html)", re.I),
            re.compile(r"/(account|billing|security|profile)[\w\-]*\.(php|html)", re.I),
            re.compile(r"/(urgent|immediate|action|required)[\w\-]*\.(php|html)", re.I),
        ]

        self.parameter_patterns = [
            re.compile(r"^(redirect|continue|return|next|goto|url)=https?://[^&]+", re.I),
            re.compile(r"^(token|session|auth|key)=[a-zA-Z0-9+/=]{20,}", re.I),
            re.compile(r"^(user|username|email|login)=[^&]+", re.I),
        ]

        self.obfuscation_patterns = [
            re.compile(r"(%[0-9A-Fa-f]{2}){5,}"),
            re.compile(r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}"),
            re.compile(r"[a-zA-Z0-9\-._~:/?#\[\]@!$&'()*+,;=]{100,}"),
            re.compile(r"\b(bit\.ly|tinyurl|goo\.gl|t\.co|ow\.ly)"),
        ]

    def analyze(self, url: str, parsed: ParsedURL) -> UrlPatternAnalysis:
        hostname = self._decode_hostname(parsed.hostname)
        name = "" if parsed.is_ip else self._registered_name(parsed)

        flags = {
            "homograph_attack": self._is_homograph(hostname),
            "typosquatting": bool(name) and self._is_typosquat(name),
            "suspicious_tld": parsed.tld.rsplit(".", 1)[-1] in self.suspicious_tlds,
            "phishing_patterns": self._has_phishing_patterns(parsed),
            "url_obfuscation": any(p.search(url) for p in self.obfuscation_patterns),
        }
        impersonation = self._brand_impersonation(name) if name else None

        patterns = [label for label, hit in flags.items() if hit]
        score = sum(PATTERN_SCORES[label] for label in patterns)
        if impersonation:
            patterns.append(f"brand_impersonation:{impersonation.likely_target}")
            if impersonation.confidence > 0.8:
                score += PATTERN_SCORES["brand_impersonation"]
        if flags["suspicious_tld"]:
            patterns.append(f"suspicious_tld:.{parsed.tld}")

        analysis = UrlPatternAnalysis(
            is_homograph=flags["homograph_attack"],
            is_typosquat=flags["typosquatting"],
            has_suspicious_tld=flags["suspicious_tld"],
            has_phishing_patterns=flags["phishing_patterns"],
            has_obfuscation=flags["url_obfuscation"],
            suspicious_score=min(score, 100),
            detected_patterns=patterns,
            brand_impersonation=impersonation,
        )
        logger.debug(f"Pattern analysis for {parsed.hostname}: {analysis.suspicious_score} {patterns}")
        return analysis

    @staticmethod
    def _decode_hostname(hostname: str) -> str:
        labels = []
        for label in hostname.lower().split("."):
            if label.startswith("xn--"):
                try:
                    label = label.encode("ascii").decode("idna")
                except UnicodeError:
                    pass
            labels.append(label)
        return ".".join(labels)

    def _registered_name(self, parsed: ParsedURL) -> str:
        """Registered domain without its public suffix, decoded."""
        domain = self._decode_hostname(parsed.domain)
        if parsed.tld and domain.endswith("." + parsed.tld):
            return domain[: -len(parsed.tld) - 1]
        return domain.rsplit(".", 1)[0]

    @staticmethod
    def _is_homograph(hostname: str) -> bool:
        return any(char in NON_ASCII_HOMOGRAPHS for char in hostname)

    def _is_typosquat(self, name: str) -> bool:
        for brand in self.brands:
            if name == brand:
                continue
            if 0.7 < similarity(name, brand) < 1.0:
                return True
            if (
                self._one_substitution(name, brand)
                or self._one_insertion(name, brand)
                or self._one_insertion(brand, name)
                or brand in name
            ):
                return True
        return False

    @staticmethod
    def _one_substitution(name: str, brand: str) -> bool:
        if len(name) != len(brand):
            return False
        return sum(a != b for a, b in zip(name, brand, strict=True)) == 1

    @staticmethod
    def _one_insertion(longer: str, shorter: str) -> bool:
        if len(longer) != len(shorter) + 1:
            return False
        return any(longer[:i] + longer[i + 1 :] == shorter for i in range(len(longer)))

    def _has_phishing_patterns(self, parsed: ParsedURL) -> bool:
        if any(p.search(parsed.path) for p in self.path_patterns):
            return True
        for key, values in parsed.query_params.items():
            for value in values:
                if any(p.search(f"{key}={value}") for p in self.parameter_patterns):
                    return True
        return False

    def _brand_impersonation(self, name: str) -> BrandImpersonation | None:
        best: BrandImpersonation | None = None
        for brand in self.brands:
            if name == brand:
                continue
            confidence = self._brand_similarity(name, brand)
            if confidence > 0.6 and (best is None or confidence > best.confidence):
                best = BrandImpersonation(brand, round(confidence, 3))
        return best

    @staticmethod
    def _brand_similarity(name: str, brand: str) -> float:
        if brand in name:
            return 0.95
        edit = similarity(name, brand)
        lookalike = 0.0
        if len(name) == len(brand):
            matches = sum(
                1.0 if a == b else 0.8 if a in HOMOGRAPHS.get(b, ()) else 0.0
                for a, b in zip(name, brand, strict=True)
            )
            lookalike = matches / len(name)
        # non-substring matches never exceed 0.85
        return min(0.85, max(edit * 0.7 + lookalike * 0.3, edit, lookalike))


default_detector = UrlPatternDetector()


def detect_url_patterns(url: str, parsed: ParsedURL) -> UrlPatternAnalysis:
    return default_detector.analyze(url, parsed)
