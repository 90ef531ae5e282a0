import math
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from fractions import Fraction

UPFRONT_PERCENTAGE = Decimal('0.12')
WORK_DAYS_PER_WEEK = 5


def to_amount(value):
    """Coerce user input to a non-negative Decimal; anything unusable becomes 0"""
    if value is None or isinstance(value, bool):
        return Decimal('0')
    try:
        amount = Decimal(str(value).strip().replace(',', '') if isinstance(value, str) else str(value))
    except (InvalidOperation, ValueError):
        return Decimal('0')
    if not amount.is_finite() or amount < 0:
        return Decimal('0')
    return amount


def round_half_up(value, places=0):
    exponent = Decimal(1).scaleb(-places)
    return Decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


def as_number(value):
    """Decimal -> int when whole, float otherwise, so results serialize as plain JSON numbers"""
    value = Decimal(value)
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def parse_date(value):
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


class BudgetService:
    """Splits a bid into the payments each execution method implies"""

    @staticmethod
    def completion_breakdown(total_bid):
        """12% up front, the rest when the project completes"""
        total = to_amount(total_bid)
        upfront = round_half_up(total * UPFRONT_PERCENTAGE)
        return {
            'execution_method': 'completion',
            'total_bid': as_number(total),
            'upfront_amount': as_number(upfront),
            'remaining_amount': as_number(total - upfront),
            'upfront_percentage': 12,
        }

    @staticmethod
    def milestone_amount(total_bid, count):
        if count <= 0:
            return 0
        return as_number(round_half_up(to_amount(total_bid) / count))

    @staticmethod
    def auto_split(total_bid, milestones):
        """Give every milestone ``round(total / count)``.

        Each share is rounded on its own, so the sum can miss the total by up to
        ``count - 1``. That slack is kept as is.
        """
        amount = BudgetService.milestone_amount(total_bid, len(milestones))
        return [dict(m, amount=amount) for m in milestones]

    @staticmethod
    def add_milestone(milestones, milestone, total_bid, execution_method='milestone'):
        updated = list(milestones) + [milestone]
        if execution_method == 'milestone' and to_amount(total_bid) > 0:
            updated = BudgetService.auto_split(total_bid, updated)
        return updated

    @staticmethod
    def remove_milestone(milestones, milestone_id, total_bid, execution_method='milestone'):
        updated = [m for m in milestones if m.get('id') != milestone_id]
        if execution_method == 'milestone' and to_amount(total_bid) > 0 and updated:
            updated = BudgetService.auto_split(total_bid, updated)
        return updated

    @staticmethod
    def validate_milestones(total_bid, milestones):
        """Compare explicit milestone amounts against the bid.

        A mismatch is reported, not raised; the caller decides whether to block.
        """
        total = to_amount(total_bid)
        allocated = sum((to_amount(m.get('amount')) for m in milestones), Decimal('0'))
        delta = allocated - total

        if delta > 0:
            message = f"Milestone total exceeds bid by ${as_number(delta):,}"
        elif delta < 0:
            message = f"Milestone total is ${as_number(-delta):,} short of the total bid"
        else:
            message = ''

        return {
            'is_valid': delta == 0,
            'total_bid': as_number(total),
            'allocated': as_number(allocated),
            'difference': as_number(abs(delta)),
            'direction': 'over' if delta > 0 else 'short' if delta < 0 else 'exact',
            'message': message,
        }

    @staticmethod
    def work_days(start_date, end_date):
        """Approximate working days as 5/7 of the calendar days, both ends included"""
        start, end = parse_date(start_date), parse_date(end_date)
        if start is None or end is None or end < start:
            return 0
        calendar_days = (end - start).days + 1
        return math.ceil(Fraction(calendar_days * WORK_DAYS_PER_WEEK, 7))

    @staticmethod
    def hourly_total(start_date, end_date, rate, max_hours_per_day):
        rate = to_amount(rate)
        max_hours = to_amount(max_hours_per_day)
        days = BudgetService.work_days(start_date, end_date)
        if not days or not rate or not max_hours:
            total = Decimal('0')
        else:
            total = round_half_up(days * rate * max_hours, 2)
        return {
            'execution_method': 'hourly',
            'work_days': days,
            'rate': as_number(rate),
            'max_hours_per_day': as_number(max_hours),
            'total': as_number(total),
        }

    @staticmethod
    def breakdown(total_bid, execution_method, milestones=None):
        """Payment breakdown for a proposal, dispatching on the execution method"""
        if execution_method == 'completion':
            return BudgetService.completion_breakdown(total_bid)

        milestones = milestones or []
        validation = BudgetService.validate_milestones(total_bid, milestones)
        return {
            'execution_method': 'milestone',
            'total_bid': validation['total_bid'],
            'milestones': [
                dict(m, amount=as_number(to_amount(m.get('amount')))) for m in milestones
            ],
            'validation': validation,
        }
