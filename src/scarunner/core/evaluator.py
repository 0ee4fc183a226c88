"""
Threshold Evaluator - Compares severity counts against configured ceilings.

Violations are a normal result that callers inspect; nothing here raises.
"""

from typing import Mapping

import structlog

from .config import ThresholdConfig
from .models import Severity, ThresholdEvaluation, ThresholdViolation


class ThresholdEvaluator:
    """
    Pure evaluation of vulnerability counts against ThresholdConfig.

    Example:
        >>> evaluator = ThresholdEvaluator()
        >>> result = evaluator.evaluate({"high": 3, "medium": 8, "low": 4}, config)
        >>> result.has_violations()
        True
    """

    def __init__(self):
        self.logger = structlog.get_logger(__name__)

    def evaluate(
        self,
        counts: Mapping[str, int],
        config: ThresholdConfig,
    ) -> ThresholdEvaluation:
        """
        Evaluate counts keyed by severity name ("high", "medium", "low").

        Args:
            counts: Observed vulnerability count per severity
            config: Threshold settings

        Returns:
            ThresholdEvaluation with one violation per severity whose count is
            strictly greater than its ceiling, in high, medium, low order
        """
        if not config.enabled:
            return ThresholdEvaluation()

        violations = []
        for severity in Severity:
            observed = int(counts.get(severity.value, 0))
            ceiling = getattr(config, severity.value)
            if observed > ceiling:
                violations.append(ThresholdViolation(severity, observed, ceiling))

        if violations:
            self.logger.info(
                "threshold_exceeded",
                severities=[v.severity.value for v in violations],
            )

        return ThresholdEvaluation(tuple(violations))
