from datetime import datetime, timezone

from flask_login import UserMixin

from quizpot import bcrypt, db

PURCHASE_FILTER = "type = 'PURCHASE'"
LIVE_ATTEMPT_FILTER = "status IN ('ACTIVE', 'PAUSED', 'COMPLETED')"


def utcnow():
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(UserMixin, db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    is_verified = db.Column(db.Boolean, default=False, nullable=False)
    # Reference currency (NGN); feeds winner gating
    lifetime_earnings = db.Column(db.Float, default=0.0, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    wallet = db.relationship('Wallet', back_populates='user', uselist=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'is_verified': self.is_verified,
            'lifetime_earnings': self.lifetime_earnings,
        }


class Wallet(db.Model):
    __tablename__ = 'wallets'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False)
    balance = db.Column(db.Integer, default=0, nullable=False)
    ad_rewards_today = db.Column(db.Integer, default=0, nullable=False)
    ad_rewards_reset_at = db.Column(db.DateTime, nullable=True)
    last_daily_claim_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = db.relationship('User', back_populates='wallet')

    __table_args__ = (
        db.CheckConstraint('balance >= 0', name='ck_wallet_balance_non_negative'),
    )

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'balance': self.balance,
            'ad_rewards_today': self.ad_rewards_today,
            'last_daily_claim_at': self.last_daily_claim_at.isoformat() if self.last_daily_claim_at else None,
        }


class WalletTransaction(db.Model):
    """Immutable ledger row; one per successful balance mutation."""
    __tablename__ = 'wallet_transactions'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    type = db.Column(db.String(32), nullable=False)  # DAILY_CLAIM, AD_REWARD, PURCHASE, ENTRY_FEE, REFUND, ADJUSTMENT, BONUS, PENALTY
    amount = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=False)
    reference = db.Column(db.String(128), nullable=True, index=True)
    meta = db.Column('metadata', db.JSON, nullable=True)
    status = db.Column(db.String(16), default='COMPLETED', nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint('balance_after >= 0', name='ck_wallet_tx_balance_non_negative'),
        # A payment reference credits a wallet at most once
        db.Index(
            'uq_wallet_tx_purchase_reference', 'user_id', 'reference', unique=True,
            postgresql_where=db.text(PURCHASE_FILTER),
            sqlite_where=db.text(PURCHASE_FILTER),
        ),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'amount': self.amount,
            'balance_after': self.balance_after,
            'description': self.description,
            'reference': self.reference,
            'metadata': self.meta,
            'status': self.status,
            'created_at': self.created_at.isoformat(),
        }


class AdRewardClaim(db.Model):
    __tablename__ = 'ad_reward_claims'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    ad_type = db.Column(db.String(32), nullable=False)
    claim_date = db.Column(db.Date, nullable=False)
    credits = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'ad_type', 'claim_date', name='uq_ad_claim_user_type_day'),
    )


class GameMode(db.Model):
    __tablename__ = 'game_modes'
    id = db.Column(db.Integer, primary_key=True)
    mode_type = db.Column(db.String(32), nullable=False)  # FREE, CHALLENGE, TOURNAMENT, SUPER_TOURNAMENT
    name = db.Column(db.String(64), nullable=False)
    questions = db.Column(db.Integer, nullable=False)
    entry_fee = db.Column(db.Integer, default=0, nullable=False)
    entry_fee_currency = db.Column(db.String(8), default='CREDITS', nullable=False)  # CREDITS or USD
    payout = db.Column(db.Float, default=0.0, nullable=False)
    payout_currency = db.Column(db.String(8), default='USD', nullable=False)
    min_answers_to_qualify = db.Column(db.Integer, nullable=False)
    max_winners = db.Column(db.Integer, default=10, nullable=False)
    language = db.Column(db.String(8), default='de', nullable=False)

    periods = db.relationship('Period', back_populates='mode', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'mode_type': self.mode_type,
            'name': self.name,
            'questions': self.questions,
            'entry_fee': self.entry_fee,
            'entry_fee_currency': self.entry_fee_currency,
            'payout': self.payout,
            'payout_currency': self.payout_currency,
            'min_answers_to_qualify': self.min_answers_to_qualify,
            'max_winners': self.max_winners,
        }


class Period(db.Model):
    __tablename__ = 'periods'
    id = db.Column(db.Integer, primary_key=True)
    mode_id = db.Column(db.Integer, db.ForeignKey('game_modes.id'), nullable=False)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(16), default='UPCOMING', nullable=False)  # UPCOMING, ACTIVE, COMPLETED
    total_participants = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    mode = db.relationship('GameMode', back_populates='periods')

    def is_open(self, now):
        return self.status == 'ACTIVE' and self.start_date <= now <= self.end_date

    def to_dict(self):
        return {
            'id': self.id,
            'mode': self.mode.to_dict() if self.mode else None,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'status': self.status,
            'total_participants': self.total_participants,
        }


class Question(db.Model):
    __tablename__ = 'questions'
    id = db.Column(db.Integer, primary_key=True)
    language = db.Column(db.String(8), default='de', nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)
    options = db.Column(db.JSON, nullable=False)
    correct_answer = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True)
    image_url = db.Column(db.String(512), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)


class GameSession(db.Model):
    __tablename__ = 'game_sessions'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    period_id = db.Column(db.Integer, db.ForeignKey('periods.id'), nullable=False, index=True)
    status = db.Column(db.String(16), default='ACTIVE', nullable=False)  # ACTIVE, PAUSED, COMPLETED, CANCELLED, EXPIRED
    total_questions = db.Column(db.Integer, nullable=False)
    answered_questions = db.Column(db.Integer, default=0, nullable=False)
    correct_answers = db.Column(db.Integer, default=0, nullable=False)
    incorrect_answers = db.Column(db.Integer, default=0, nullable=False)
    skipped_answers = db.Column(db.Integer, default=0, nullable=False)
    score = db.Column(db.Integer, default=0, nullable=False)
    total_time_spent = db.Column(db.Float, default=0.0, nullable=False)
    device_info = db.Column(db.String(255), nullable=True, index=True)
    ip_address = db.Column(db.String(64), nullable=True, index=True)
    entry_reference = db.Column(db.String(128), nullable=True)
    started_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    last_activity_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)

    period = db.relationship('Period')
    questions = db.relationship('SessionQuestion', back_populates='session', order_by='SessionQuestion.position', lazy='dynamic')

    __table_args__ = (
        # One open or completed attempt per (user, period); cancelled and expired ones may repeat
        db.Index(
            'uq_game_session_live_attempt', 'user_id', 'period_id', unique=True,
            postgresql_where=db.text(LIVE_ATTEMPT_FILTER),
            sqlite_where=db.text(LIVE_ATTEMPT_FILTER),
        ),
    )

    @property
    def average_response_time(self):
        if not self.answered_questions:
            return 0.0
        return self.total_time_spent / self.answered_questions

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'period_id': self.period_id,
            'status': self.status,
            'total_questions': self.total_questions,
            'answered_questions': self.answered_questions,
            'correct_answers': self.correct_answers,
            'incorrect_answers': self.incorrect_answers,
            'skipped_answers': self.skipped_answers,
            'score': self.score,
            'average_response_time': self.average_response_time,
            'started_at': self.started_at.isoformat(),
            'last_activity_at': self.last_activity_at.isoformat(),
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }


class SessionQuestion(db.Model):
    __tablename__ = 'session_questions'
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('game_sessions.id'), nullable=False)
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id'), nullable=False)
    position = db.Column(db.Integer, nullable=False)
    # Option order shown to this session; fixed when the question is assigned
    options = db.Column(db.JSON, nullable=False)

    session = db.relationship('GameSession', back_populates='questions')
    question = db.relationship('Question')

    __table_args__ = (
        db.UniqueConstraint('session_id', 'question_id', name='uq_session_question'),
        db.UniqueConstraint('session_id', 'position', name='uq_session_position'),
    )

    def to_client_dict(self, timer_sec):
        return {
            'id': self.question_id,
            'session_question_id': self.id,
            'index': self.position,
            'text': self.question.text,
            'options': list(self.options),
            'image_url': self.question.image_url,
            'time_limit': timer_sec,
        }


class Answer(db.Model):
    __tablename__ = 'answers'
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('game_sessions.id'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id'), nullable=False)
    selected_option = db.Column(db.String(255), nullable=True)
    is_skipped = db.Column(db.Boolean, default=False, nullable=False)
    is_correct = db.Column(db.Boolean, default=False, nullable=False)
    response_time = db.Column(db.Float, nullable=False)
    points = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('session_id', 'question_id', name='uq_answer_session_question'),
    )


class LeaderboardEntry(db.Model):
    __tablename__ = 'leaderboard_entries'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    period_id = db.Column(db.Integer, db.ForeignKey('periods.id'), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey('game_sessions.id'), nullable=False)
    rank = db.Column(db.Integer, nullable=True)
    score = db.Column(db.Integer, default=0, nullable=False)
    answered_questions = db.Column(db.Integer, default=0, nullable=False)
    correct_answers = db.Column(db.Integer, default=0, nullable=False)
    is_qualified = db.Column(db.Boolean, default=False, nullable=False)
    average_response_time = db.Column(db.Float, default=0.0, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    user = db.relationship('User')

    __table_args__ = (
        db.UniqueConstraint('user_id', 'period_id', name='uq_leaderboard_user_period'),
    )

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'username': self.user.username if self.user else None,
            'rank': self.rank,
            'score': self.score,
            'answered_questions': self.answered_questions,
            'correct_answers': self.correct_answers,
            'is_qualified': self.is_qualified,
            'average_response_time': self.average_response_time,
            'completed_at': self.completed_at.isoformat(),
        }


class Winner(db.Model):
    __tablename__ = 'winners'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    period_id = db.Column(db.Integer, db.ForeignKey('periods.id'), nullable=False, index=True)
    rank = db.Column(db.Integer, nullable=False)
    score = db.Column(db.Integer, nullable=False)
    payout_amount = db.Column(db.Float, nullable=False)
    payout_currency = db.Column(db.String(8), nullable=False)
    earnings_credited = db.Column(db.Float, default=0.0, nullable=False)
    conversion_rate = db.Column(db.Float, nullable=False)
    rate_version = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), default='PENDING', nullable=False)  # PENDING, APPROVED, REJECTED, PAID
    payment_reference = db.Column(db.String(128), nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = db.relationship('User')

    __table_args__ = (
        db.UniqueConstraint('user_id', 'period_id', name='uq_winner_user_period'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'username': self.user.username if self.user else None,
            'period_id': self.period_id,
            'rank': self.rank,
            'score': self.score,
            'payout_amount': self.payout_amount,
            'payout_currency': self.payout_currency,
            'status': self.status,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
        }


class FraudFlag(db.Model):
    """A finalisation candidate excluded by fraud screening, kept for manual review."""
    __tablename__ = 'fraud_flags'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    period_id = db.Column(db.Integer, db.ForeignKey('periods.id'), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey('game_sessions.id'), nullable=True)
    risk_level = db.Column(db.String(8), nullable=False)
    reasons = db.Column(db.JSON, nullable=False)
    review_status = db.Column(db.String(16), default='OPEN', nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
