# app/core/security_middleware.py
import logging
import re
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from fastapi import HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.security import JWTManager, SecurityConfig

logger = logging.getLogger(__name__)

# /missions/{id} et /missions/{id}/{action}
MISSION_ROUTE = re.compile(r"^/missions/(?P<mission_id>\d+)(?:/(?P<action>[a-z-]+))?/?$")

DECISION_ACTIONS = {"submit", "approve", "reject", "payment"}


def _mission_action(path: str) -> Optional[str]:
    match = MISSION_ROUTE.match(path)
    return match.group("action") if match else None


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """En-têtes de sécurité ajoutés à toutes les réponses"""
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for header, value in SecurityConfig.SECURITY_HEADERS.items():
            response.headers[header] = value
        return response


class SlidingWindowCounter:
    """
    Compteur de requêtes par client sur une fenêtre glissante.
    Les clients inactifs depuis une fenêtre complète sont purgés régulièrement.
    """

    def __init__(self, max_requests: int, window_seconds: int, purge_every: int = 500):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.purge_every = purge_every
        self.hits: Dict[str, Deque[float]] = {}
        self._calls = 0

    def _trim(self, window: Deque[float], now: float) -> None:
        while window and now - window[0] >= self.window_seconds:
            window.popleft()

    def purge(self, now: float) -> None:
        for identifier in list(self.hits):
            window = self.hits[identifier]
            self._trim(window, now)
            if not window:
                del self.hits[identifier]

    def hit(self, identifier: str, now: Optional[float] = None) -> bool:
        """Enregistre la requête; False si la limite est atteinte sur la fenêtre"""
        now = time.time() if now is None else now
        self._calls += 1
        if self._calls % self.purge_every == 0:
            self.purge(now)

        window = self.hits.setdefault(identifier, deque())
        self._trim(window, now)
        if len(window) >= self.max_requests:
            return False
        window.append(now)
        return True

    def retry_after(self, identifier: str, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        window = self.hits.get(identifier)
        if not window:
            return 0
        return max(1, int(self.window_seconds - (now - window[0])))


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Limitation de taux en mémoire par adresse IP, plus stricte sur /auth/login.
    Non partagée entre plusieurs instances de l'API.
    """

    def __init__(self, app, max_requests: int = 100, window_seconds: int = 900, login_max_requests: int = 10):
        super().__init__(app)
        self.general = SlidingWindowCounter(max_requests, window_seconds)
        self.login = SlidingWindowCounter(login_max_requests, window_seconds)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path.startswith(("/docs", "/openapi.json", "/redoc")):
            return await call_next(request)

        identifier = request.client.host if request.client else "unknown"
        counter = self.login if request.url.path == "/auth/login" else self.general

        if not counter.hit(identifier):
            retry_after = counter.retry_after(identifier)
            logger.warning(f"RATE LIMIT: {identifier} a dépassé {counter.max_requests} requêtes sur {request.url.path}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Trop de requêtes. Veuillez réessayer plus tard.", "retry_after": retry_after},
                headers={"Retry-After": str(retry_after)},
            )

        response = await call_next(request)
        remaining = max(0, counter.max_requests - len(counter.hits.get(identifier, ())))
        response.headers["X-RateLimit-Limit"] = str(counter.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response


class MissionAuditMiddleware(BaseHTTPMiddleware):
    """
    Journal d'accès orienté bons de mission: utilisateur (depuis le token),
    bon concerné et action du circuit. Les refus, conflits et erreurs serveur
    sont journalisés en avertissement ou en erreur.
    """

    @staticmethod
    def _username(request: Request) -> str:
        auth_header = request.headers.get("authorization", "")
        if not auth_header.startswith("Bearer "):
            return "anonyme"
        try:
            return JWTManager.verify_token(auth_header[len("Bearer "):]).username or "inconnu"
        except HTTPException:
            return "token-invalide"

    def describe(self, request: Request, status_code: int, elapsed: float) -> str:
        parts = [
            f"{request.method} {request.url.path}",
            f"statut={status_code}",
            f"utilisateur={self._username(request)}",
        ]
        match = MISSION_ROUTE.match(request.url.path)
        if match:
            parts.append(f"bon={match.group('mission_id')}")
            if match.group("action"):
                parts.append(f"action={match.group('action')}")
        parts.append(f"durée={elapsed * 1000:.1f}ms")
        return " ".join(parts)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"ERREUR SERVEUR: {self.describe(request, 500, time.time() - start_time)}")
            raise

        line = self.describe(request, response.status_code, time.time() - start_time)
        if response.status_code >= 500:
            logger.error(f"ERREUR SERVEUR: {line}")
        elif response.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN):
            logger.warning(f"ACCÈS REFUSÉ: {line}")
        elif response.status_code == status.HTTP_409_CONFLICT:
            logger.warning(f"CONFLIT: {line}")
        elif _mission_action(request.url.path) in DECISION_ACTIONS:
            logger.info(f"DÉCISION: {line}")
        else:
            logger.info(f"ACCÈS: {line}")
        return response


def setup_security_middlewares(app):
    """
    Ajoute les middlewares de sécurité. Starlette les exécute en ordre inverse
    d'ajout pour les requêtes entrantes.
    """
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(MissionAuditMiddleware)

    if SecurityConfig.RATE_LIMIT_ENABLED:
        app.add_middleware(
            RateLimitMiddleware,
            max_requests=SecurityConfig.RATE_LIMIT_REQUESTS,
            window_seconds=SecurityConfig.RATE_LIMIT_WINDOW,
            login_max_requests=SecurityConfig.LOGIN_RATE_LIMIT_REQUESTS,
        )

    logger.info("Middlewares de sécurité configurés et ajoutés à l'application.")

    return app
