from dataclasses import dataclass, field
from typing import Dict, Mapping


@dataclass(frozen=True)
class GameSettings:
    """Runtime knobs for the game services.

    Built once from the Flask config in ``create_app`` and handed to every
    service; nothing below the app factory reads ``current_app.config``.
    """

    session_idle_timeout_minutes: int = 30
    questions_per_batch: int = 10
    max_batch_size: int = 20
    question_timer_sec: int = 25
    default_language: str = 'de'

    score_correct_points: int = 10
    score_speed_bonus: int = 5
    score_speed_window_sec: float = 25.0

    daily_claim_amount: int = 10
    daily_claim_interval_hours: int = 24
    ad_reward_amounts: Dict[str, int] = field(default_factory=lambda: {'rewarded_video': 50, 'interstitial': 25})
    ad_reward_daily_limit: int = 20
    credit_bundles: Dict[str, Dict[str, int]] = field(default_factory=dict)

    winner_gating_thresholds: Dict[str, float] = field(default_factory=dict)
    earnings_conversion_rates: Dict[str, float] = field(default_factory=lambda: {'USD': 800.0, 'NGN': 1.0})
    earnings_rate_version: str = 'default'

    fraud_fast_response_sec: float = 2.0
    fraud_high_accuracy: float = 0.9
    fraud_min_variance: float = 0.5
    fraud_variance_min_samples: int = 50
    fraud_max_users_per_device: int = 2
    fraud_history_window: int = 10

    answer_rate_limit_per_minute: int = 60

    @classmethod
    def from_mapping(cls, cfg: Mapping) -> 'GameSettings':
        defaults = cls()

        def pick(key, attr, cast):
            value = cfg.get(key)
            return getattr(defaults, attr) if value is None else cast(value)

        return cls(
            session_idle_timeout_minutes=pick('SESSION_IDLE_TIMEOUT_MINUTES', 'session_idle_timeout_minutes', int),
            questions_per_batch=pick('QUESTIONS_PER_BATCH', 'questions_per_batch', int),
            question_timer_sec=pick('QUESTION_TIMER_SEC', 'question_timer_sec', int),
            default_language=pick('DEFAULT_LANGUAGE', 'default_language', str),
            score_correct_points=pick('SCORE_CORRECT_POINTS', 'score_correct_points', int),
            score_speed_bonus=pick('SCORE_SPEED_BONUS', 'score_speed_bonus', int),
            score_speed_window_sec=pick('SCORE_SPEED_WINDOW_SEC', 'score_speed_window_sec', float),
            daily_claim_amount=pick('DAILY_CLAIM_AMOUNT', 'daily_claim_amount', int),
            daily_claim_interval_hours=pick('DAILY_CLAIM_INTERVAL_HOURS', 'daily_claim_interval_hours', int),
            ad_reward_amounts=pick('AD_REWARD_AMOUNTS', 'ad_reward_amounts', dict),
            ad_reward_daily_limit=pick('AD_REWARD_DAILY_LIMIT', 'ad_reward_daily_limit', int),
            credit_bundles=pick('CREDIT_BUNDLES', 'credit_bundles', dict),
            winner_gating_thresholds=pick('WINNER_GATING_THRESHOLDS', 'winner_gating_thresholds', dict),
            earnings_conversion_rates=pick('EARNINGS_CONVERSION_RATES', 'earnings_conversion_rates', dict),
            earnings_rate_version=pick('EARNINGS_RATE_VERSION', 'earnings_rate_version', str),
            fraud_fast_response_sec=pick('FRAUD_FAST_RESPONSE_SEC', 'fraud_fast_response_sec', float),
            fraud_high_accuracy=pick('FRAUD_HIGH_ACCURACY', 'fraud_high_accuracy', float),
            fraud_min_variance=pick('FRAUD_MIN_VARIANCE', 'fraud_min_variance', float),
            fraud_variance_min_samples=pick('FRAUD_VARIANCE_MIN_SAMPLES', 'fraud_variance_min_samples', int),
            fraud_max_users_per_device=pick('FRAUD_MAX_USERS_PER_DEVICE', 'fraud_max_users_per_device', int),
            fraud_history_window=pick('FRAUD_HISTORY_WINDOW', 'fraud_history_window', int),
            answer_rate_limit_per_minute=pick('ANSWER_RATE_LIMIT_PER_MINUTE', 'answer_rate_limit_per_minute', int),
        )
