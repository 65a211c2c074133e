import os

from pydantic import BaseModel

APP_VERSION = "0.1.0"


def _csv(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


class Settings(BaseModel):
    DATA_DIR: str = os.getenv("DATA_DIR", "data")

    # Scanners
    ENABLED_SCANNERS: list[str] = _csv(os.getenv("ENABLED_SCANNERS", "codeql,snyk,zap"))
    REQUIRED_SCANNERS: list[str] = _csv(os.getenv("REQUIRED_SCANNERS", ""))
    SCANNER_TIMEOUT_SEC: float = float(os.getenv("SCANNER_TIMEOUT_SEC", "1800"))

    # CodeQL
    CODEQL_LANGUAGE: str = os.getenv("CODEQL_LANGUAGE", "javascript")
    CODEQL_SUITE: str = os.getenv("CODEQL_SUITE", "javascript-security-extended.qls")

    # Snyk (SNYK_TOKEN is read by the snyk CLI itself)
    SNYK_ARGS: list[str] = os.getenv("SNYK_ARGS", "").split()

    # OWASP ZAP
    ZAP_IMAGE: str = os.getenv("ZAP_IMAGE", "ghcr.io/zaproxy/zaproxy:stable")
    ZAP_RULES_FILE: str | None = os.getenv("ZAP_RULES_FILE")

    # Quality gate defaults (policy "default")
    GATE_MAX_SEVERITY: str = os.getenv("GATE_MAX_SEVERITY", "HIGH")
    GATE_MIN_SCANNERS: int = int(os.getenv("GATE_MIN_SCANNERS", "0"))
    GATE_ALLOWLIST: list[str] = _csv(os.getenv("GATE_ALLOWLIST", ""))

    # Redeploy
    DEPLOY_IMAGE: str = os.getenv("DEPLOY_IMAGE", "bkimminich/juice-shop")
    DEPLOY_CONTAINER: str = os.getenv("DEPLOY_CONTAINER", "juice-shop")
    DEPLOY_PORTS: str = os.getenv("DEPLOY_PORTS", "3000:3000")
    DEPLOY_HEALTH_URL: str = os.getenv("DEPLOY_HEALTH_URL", "http://localhost:3000")
    DEPLOY_TIMEOUT_SEC: float = float(os.getenv("DEPLOY_TIMEOUT_SEC", "60"))


settings = Settings()
