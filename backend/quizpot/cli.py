import random
from datetime import timedelta

import click

from quizpot import db, get_services
from quizpot.models import GameMode, Period, Question, User, utcnow

SEED_MODES = [
    # mode_type, name, questions, entry_fee, fee_currency, payout, min_answers, period_days
    ('FREE', 'Free Weekly', 1000, 0, 'CREDITS', 100, 1000, 7),
    ('CHALLENGE', 'Challenge Monthly', 100, 10, 'USD', 1000, 100, 30),
    ('TOURNAMENT', 'Tournament Monthly', 1000, 1000, 'CREDITS', 10000, 1000, 30),
    ('SUPER_TOURNAMENT', 'Super Tournament Monthly', 1000, 10000, 'CREDITS', 100000, 1000, 30),
]


def seed_questions(count, language='de', seed=42):
    rng = random.Random(seed)
    for i in range(count):
        a, b = rng.randint(2, 99), rng.randint(2, 99)
        correct = a + b
        wrong = set()
        while len(wrong) < 3:
            candidate = correct + rng.choice([-11, -10, -2, -1, 1, 2, 10, 11])
            if candidate > 0:
                wrong.add(candidate)
        db.session.add(Question(
            language=language,
            text=f'Wie viel ist {a} + {b}?',
            options=[str(correct)] + [str(w) for w in sorted(wrong)],
            correct_answer=str(correct),
            category='math',
        ))


def register_commands(flask_app):
    @flask_app.cli.command('db-reset')
    @click.option('--questions', default=1000, show_default=True, help='Number of demo questions to generate.')
    def db_reset_command(questions):
        """Drops, recreates, and seeds the database."""
        services = get_services()
        db.drop_all()
        db.create_all()

        for name in ['testuser1', 'testuser2', 'testuser3']:
            user = User(username=name, is_verified=True)
            user.set_password('password')
            db.session.add(user)
            db.session.flush()
            services.ledger.ensure_wallet(user.id, commit=False)

        now = utcnow()
        for mode_type, name, count, fee, currency, payout, min_answers, days in SEED_MODES:
            mode = GameMode(
                mode_type=mode_type,
                name=name,
                questions=count,
                entry_fee=fee,
                entry_fee_currency=currency,
                payout=payout,
                payout_currency='USD',
                min_answers_to_qualify=min_answers,
                max_winners=10,
                language=services.settings.default_language,
            )
            db.session.add(mode)
            db.session.flush()
            db.session.add(Period(mode_id=mode.id, start_date=now, end_date=now + timedelta(days=days), status='ACTIVE'))

        seed_questions(questions, language=services.settings.default_language)
        db.session.commit()
        click.echo('Database has been reset and seeded!')

    @flask_app.cli.command('finalize-period')
    @click.argument('period_id', type=int)
    def finalize_period_command(period_id):
        """Select winners for one ACTIVE period and close it."""
        result = get_services().winners.finalize_period(period_id)
        click.echo(f'Period {period_id} finalized: {len(result.winners)} winners, {result.fraud_cases} fraud cases')

    @flask_app.cli.command('finalize-due-periods')
    def finalize_due_periods_command():
        """Finalize every ACTIVE period whose end date has passed."""
        results = get_services().winners.finalize_due_periods()
        for result in results:
            click.echo(f'Period {result.period_id}: {len(result.winners)} winners, {result.fraud_cases} fraud cases')
        click.echo(f'{len(results)} period(s) finalized')

    @flask_app.cli.command('activate-due-periods')
    def activate_due_periods_command():
        """Open every UPCOMING period whose start date has passed."""
        activated = get_services().winners.activate_due_periods()
        click.echo(f'{len(activated)} period(s) activated')

    @flask_app.cli.command('approve-winner')
    @click.argument('winner_id', type=int)
    def approve_winner_command(winner_id):
        winner = get_services().winners.approve_winner(winner_id)
        click.echo(f'Winner {winner.id} is {winner.status}')

    @flask_app.cli.command('reject-winner')
    @click.argument('winner_id', type=int)
    @click.option('--reason', default='', help='Recorded in the audit trail.')
    def reject_winner_command(winner_id, reason):
        winner = get_services().winners.reject_winner(winner_id, reason)
        click.echo(f'Winner {winner.id} is {winner.status}')

    @flask_app.cli.command('mark-winner-paid')
    @click.argument('winner_id', type=int)
    @click.argument('payment_reference')
    def mark_winner_paid_command(winner_id, payment_reference):
        winner = get_services().winners.mark_winner_paid(winner_id, payment_reference)
        click.echo(f'Winner {winner.id} is {winner.status} ({winner.payment_reference})')

    @flask_app.cli.command('award-bonus')
    @click.argument('user_id', type=int)
    @click.argument('amount', type=int)
    @click.option('--reason', required=True, help='Stored on the ledger row.')
    def award_bonus_command(user_id, amount, reason):
        result = get_services().rewards.award_bonus_credits(user_id, amount, reason)
        click.echo(f'User {user_id} balance is {result.new_balance}')

    @flask_app.cli.command('penalize-credits')
    @click.argument('user_id', type=int)
    @click.argument('amount', type=int)
    @click.option('--reason', required=True, help='Stored on the ledger row.')
    def penalize_credits_command(user_id, amount, reason):
        result = get_services().rewards.penalize_credits(user_id, amount, reason)
        click.echo(f'User {user_id} balance is {result.new_balance}')

    @flask_app.cli.command('user-stats')
    @click.argument('user_id', type=int)
    def user_stats_command(user_id):
        stats = get_services().stats.user_stats(user_id)
        for key, value in stats.to_dict().items():
            click.echo(f'{key}: {value}')
