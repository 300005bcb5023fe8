"""Policy evaluators - pluggable score-to-action strategies.

Each evaluator takes the evaluator input document
``{"signals": {...}, "score": int, "breakdown": {...}}`` and returns an
EvaluatorDecision. The threshold evaluator needs nothing external and is
always available; the delegated evaluator asks an OPA-style policy service.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from adaptive_auth.common.constants import EvaluatorConstants
from adaptive_auth.common.exceptions import EvaluatorUnavailable, MalformedEvaluatorResponse
from adaptive_auth.governance.policies.schemas import (
    EvaluatorDecision,
    EvaluatorResponse,
    PolicyAction,
)


logger = logging.getLogger(__name__)


class PolicyEvaluator(ABC):
    """Maps an evaluator input document to a decision."""
    
    name: str = "evaluator"
    
    @abstractmethod
    def evaluate(self, signals: Dict[str, Any]) -> EvaluatorDecision:
        """Decide on one evaluation.
        
        Args:
            signals: ``{"signals", "score", "breakdown"}`` input document
            
        Returns:
            EvaluatorDecision
        """
        pass


class ThresholdEvaluator(PolicyEvaluator):
    """Fixed score bands.
    
    score <= allow_max -> allow; score <= mfa_max -> mfa_required;
    anything higher -> blocked. With the defaults: 40 allows, 41 and 70
    step up, 71 blocks.
    """
    
    name = "threshold"
    
    def __init__(self, allow_max: int = 40, mfa_max: int = 70):
        if not 0 <= allow_max < mfa_max <= 100:
            raise ValueError("Thresholds must satisfy 0 <= allow_max < mfa_max <= 100")
        self.allow_max = allow_max
        self.mfa_max = mfa_max
    
    def decide(self, score: int) -> PolicyAction:
        if score <= self.allow_max:
            return PolicyAction.ALLOW
        if score <= self.mfa_max:
            return PolicyAction.MFA_REQUIRED
        return PolicyAction.BLOCKED
    
    def level(self, score: int) -> str:
        if score <= self.allow_max:
            return "low"
        if score <= self.mfa_max:
            return "medium"
        return "high"
    
    def evaluate(self, signals: Dict[str, Any]) -> EvaluatorDecision:
        score = int(signals["score"])
        return EvaluatorDecision(
            action=self.decide(score),
            risk_score=score,
            risk_level=self.level(score),
            breakdown=dict(signals.get("breakdown") or {}),
        )


class DelegatedEvaluator(PolicyEvaluator):
    """Asks an external policy service for the decision.
    
    Sends ``POST {base_url}/v1/data/{package}`` with ``{"input": signals}``
    and expects ``{"result": {risk_score, risk_level, action, breakdown}}``.
    
    Raises EvaluatorUnavailable for transport failures, timeouts and non-2xx
    statuses, and MalformedEvaluatorResponse when the body does not validate.
    Callers are expected to fall back to thresholds on either.
    """
    
    name = "delegated"
    
    def __init__(
        self,
        base_url: str,
        package: str = EvaluatorConstants.DEFAULT_PACKAGE,
        timeout: float = EvaluatorConstants.DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.Client] = None,
    ):
        """Initialize the delegated evaluator.
        
        Args:
            base_url: Policy service root, e.g. ``http://opa:8181``
            package: Policy package path; dots are turned into slashes
            timeout: Per-request timeout in seconds
            client: Pre-built httpx client (tests pass one with a mock transport)
        """
        self.base_url = base_url.rstrip("/")
        self.package = package.replace(".", "/").strip("/")
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None
    
    @property
    def url(self) -> str:
        return f"{self.base_url}/v1/data/{self.package}"
    
    def evaluate(self, signals: Dict[str, Any]) -> EvaluatorDecision:
        try:
            response = self._client.post(
                self.url,
                json={"input": signals},
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise EvaluatorUnavailable(
                f"Policy evaluator timed out after {self.timeout}s",
                details={"url": self.url}
            ) from e
        except httpx.HTTPStatusError as e:
            raise EvaluatorUnavailable(
                f"Policy evaluator returned HTTP {e.response.status_code}",
                details={"url": self.url, "status_code": e.response.status_code}
            ) from e
        except httpx.HTTPError as e:
            raise EvaluatorUnavailable(
                f"Policy evaluator request failed: {e}",
                details={"url": self.url}
            ) from e
        
        try:
            body = response.json()
        except ValueError as e:
            raise MalformedEvaluatorResponse(
                "Policy evaluator returned a non-JSON body",
                details={"url": self.url}
            ) from e
        
        try:
            parsed = EvaluatorResponse.model_validate(body)
        except ValidationError as e:
            raise MalformedEvaluatorResponse(
                "Policy evaluator response failed validation",
                details={"url": self.url, "errors": e.errors(include_url=False)}
            ) from e
        
        result = parsed.result
        score = int(round(result.risk_score))
        logger.debug(
            "Delegated evaluator decision",
            extra={"action": result.action.value, "risk_score": score}
        )
        return EvaluatorDecision(
            action=result.action,
            risk_score=score,
            risk_level=result.risk_level,
            breakdown={k: int(round(v)) for k, v in result.breakdown.items()},
        )
    
    def close(self) -> None:
        if self._owns_client:
            self._client.close()
