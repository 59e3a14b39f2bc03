"""
Cooperative Portal - Consolidated Models
========================================

Members, the contribution ledger, loans with their guarantors and
collateral, business configuration and the approval workflow records.
"""

from django.conf import settings
from django.contrib.auth.models import AbstractUser, UserManager as DjangoUserManager
from django.core.exceptions import ValidationError, PermissionDenied
from django.core.validators import MinValueValidator
from django.db import models, transaction as db_transaction
from django.utils import timezone
from decimal import Decimal, InvalidOperation
import json
import logging

from .base import BaseModel, NormalizedChoices, StatusField
from cooperative.managers import (
    MemberQuerySet, ContributionQuerySet, LoanQuerySet,
    LoanRepaymentQuerySet, WorkflowApprovalQuerySet,
    RUNNING_LOAN_STATUSES,
)
from cooperative.utils.helpers import (
    local_today, months_between, add_months, generate_reference,
)
from cooperative.utils.money import MoneyCalculator, InterestCalculator


logger = logging.getLogger(__name__)


MONEY_MIN = Decimal('0.01')


# =============================================================================
# USER MODEL
# =============================================================================

class UserManager(DjangoUserManager):
    """Auth manager with role lookups used for approval routing"""

    def with_role(self, role):
        """Active users holding `role`"""
        return self.filter(role=role, is_active=True)


class User(AbstractUser):
    """
    Portal user

    Members log in to apply for loans; officers, managers, the loan
    committee and the president approve workflow levels.
    """

    class Role(NormalizedChoices):
        MEMBER = 'member', 'Member'
        LOAN_OFFICER = 'loan_officer', 'Loan Officer'
        MANAGER = 'manager', 'Manager'
        COMMITTEE = 'committee', 'Loan Committee'
        PRESIDENT = 'president', 'President'
        ADMIN = 'admin', 'Administrator'

    role = StatusField(
        max_length=20,
        choices=Role.choices,
        default=Role.MEMBER,
        help_text="Role used for permissions and approval levels"
    )
    phone = models.CharField(max_length=17, blank=True)

    objects = UserManager()

    class Meta:
        ordering = ['username']

    def __str__(self):
        return self.get_full_name() or self.username


# =============================================================================
# MEMBER MODEL
# =============================================================================

class Member(BaseModel):
    """
    Cooperative member

    join_date is fixed once the record exists; status changes go through
    `change_status()` which only administrators may call.
    """

    class Status(NormalizedChoices):
        ACTIVE = 'active', 'Active'
        PROBATION = 'probation', 'Probation'
        SUSPENDED = 'suspended', 'Suspended'
        INACTIVE = 'inactive', 'Inactive'

    class MembershipType(NormalizedChoices):
        REGULAR = 'regular', 'Regular'
        ASSOCIATE = 'associate', 'Associate'
        STAFF = 'staff', 'Staff'

    member_number = models.CharField(
        max_length=30,
        unique=True,
        blank=True,
        help_text="Auto-generated member number"
    )
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='member'
    )

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=17, blank=True)

    membership_type = StatusField(
        max_length=20,
        choices=MembershipType.choices,
        default=MembershipType.REGULAR
    )
    status = StatusField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE
    )
    join_date = models.DateField(default=local_today)

    objects = MemberQuerySet.as_manager()

    class Meta:
        ordering = ['last_name', 'first_name']

    def __str__(self):
        return f"{self.member_number} - {self.get_full_name()}"

    def get_full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def save(self, *args, **kwargs):
        if self._state.adding:
            if not self.member_number:
                self.member_number = generate_reference('MEM', Member, field='member_number')
        else:
            stored = (
                Member.objects.filter(pk=self.pk)
                .values_list('join_date', flat=True)
                .first()
            )
            if stored is not None and stored != self.join_date:
                raise ValidationError({'join_date': "Join date cannot be changed once recorded"})
        super().save(*args, **kwargs)

    def membership_months(self, today=None):
        """Whole months of membership"""
        return months_between(self.join_date, today or local_today())

    @property
    def is_active(self):
        return self.status == self.Status.ACTIVE

    def change_status(self, status, changed_by):
        """Administrative status change"""
        from cooperative.permissions import PermissionChecker

        if not PermissionChecker(changed_by).can_manage_members():
            raise PermissionDenied("Only administrators can change member status")

        new_status = self.Status.normalize(status)
        previous = self.status
        self.status = new_status
        self.save(update_fields=['status', 'updated_at'])
        logger.info(f"Member {self.member_number} status {previous} -> {new_status} by {changed_by}")


# =============================================================================
# CONTRIBUTION LEDGER
# =============================================================================

class Contribution(BaseModel):
    """
    Savings contribution ledger entry

    Append-only: balances are always derived by summation. Only the status
    of an entry may change (pending -> completed, completed -> reversed).
    """

    class Type(NormalizedChoices):
        MANDATORY = 'mandatory', 'Mandatory'
        VOLUNTARY = 'voluntary', 'Voluntary'

    class Status(NormalizedChoices):
        COMPLETED = 'completed', 'Completed'
        PENDING = 'pending', 'Pending'
        REVERSED = 'reversed', 'Reversed'

    IMMUTABLE_FIELDS = ('member_id', 'amount', 'contribution_type', 'transaction_date')

    member = models.ForeignKey(
        Member,
        on_delete=models.PROTECT,
        related_name='contributions'
    )
    amount = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        validators=[MinValueValidator(MONEY_MIN)]
    )
    contribution_type = StatusField(max_length=20, choices=Type.choices)
    status = StatusField(max_length=20, choices=Status.choices, default=Status.COMPLETED)
    transaction_date = models.DateTimeField(default=timezone.now, db_index=True)
    reference = models.CharField(max_length=30, unique=True, blank=True)
    description = models.CharField(max_length=255, blank=True)

    objects = ContributionQuerySet.as_manager()

    class Meta:
        ordering = ['-transaction_date']
        indexes = [
            models.Index(fields=['member', 'contribution_type', 'status'], name='contribution_member_type_idx'),
        ]

    def __str__(self):
        return f"{self.reference} - {MoneyCalculator.format_currency(self.amount)} ({self.contribution_type})"

    def save(self, *args, **kwargs):
        if self._state.adding:
            if not self.reference:
                self.reference = generate_reference('CTB', Contribution)
        else:
            stored = Contribution.objects.filter(pk=self.pk).values(*self.IMMUTABLE_FIELDS).first()
            if stored:
                changed = [
                    name for name in self.IMMUTABLE_FIELDS
                    if stored[name] != self._meta.get_field(name).to_python(getattr(self, name))
                ]
                if changed:
                    raise ValidationError(
                        f"Ledger entry {self.reference} cannot be edited ({', '.join(changed)}); "
                        f"post a reversal instead"
                    )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Contribution ledger entries cannot be deleted; post a reversal instead")


# =============================================================================
# LOAN TYPE
# =============================================================================

class LoanType(BaseModel):
    """
    Loan product configuration: rate, amount and term bands, guarantor
    requirement and the risk class used for approval routing.
    """

    class RiskClass(NormalizedChoices):
        LOW = 'low', 'Low'
        STANDARD = 'standard', 'Standard'
        HIGH = 'high', 'High'

    name = models.CharField(max_length=100, unique=True)
    code = models.CharField(max_length=20, unique=True)
    description = models.TextField(blank=True)

    interest_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal('12.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Annual interest rate in percent"
    )

    min_amount = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        default=Decimal('10000.00'),
        validators=[MinValueValidator(MONEY_MIN)]
    )
    max_amount = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        default=Decimal('1000000.00'),
        validators=[MinValueValidator(MONEY_MIN)]
    )

    min_term_months = models.PositiveIntegerField(default=1)
    max_term_months = models.PositiveIntegerField(default=24)

    requires_guarantor = models.BooleanField(default=False)
    guarantor_count = models.PositiveIntegerField(default=0)

    risk_class = StatusField(
        max_length=20,
        choices=RiskClass.choices,
        default=RiskClass.STANDARD
    )
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def clean(self):
        super().clean()
        errors = {}

        if self.min_amount and self.max_amount and self.min_amount > self.max_amount:
            errors['max_amount'] = "Maximum amount must not be below the minimum amount"

        if self.min_term_months > self.max_term_months:
            errors['max_term_months'] = "Maximum term must not be below the minimum term"

        if self.requires_guarantor and self.guarantor_count < 1:
            errors['guarantor_count'] = "At least one guarantor is required when guarantors are mandatory"

        if errors:
            raise ValidationError(errors)

    def is_term_valid(self, term_months):
        return self.min_term_months <= term_months <= self.max_term_months


# =============================================================================
# LOAN MODEL
# =============================================================================

class Loan(BaseModel):
    """
    Loan application and account

    Lifecycle: pending -> approved (workflow) -> active (disbursed) -> paid,
    or rejected / revision_requested from the workflow, or defaulted /
    written_off from collections.
    """

    class Status(NormalizedChoices):
        PENDING = 'pending', 'Pending'
        APPROVED = 'approved', 'Approved'
        DISBURSED = 'disbursed', 'Disbursed'
        ACTIVE = 'active', 'Active'
        PAID = 'paid', 'Paid'
        REJECTED = 'rejected', 'Rejected'
        REVISION_REQUESTED = 'revision_requested', 'Revision Requested'
        DEFAULTED = 'defaulted', 'Defaulted'
        WRITTEN_OFF = 'written_off', 'Written Off'

    reference = models.CharField(
        max_length=30,
        unique=True,
        blank=True,
        help_text="Application reference number"
    )

    member = models.ForeignKey(
        Member,
        on_delete=models.PROTECT,
        related_name='loans'
    )
    loan_type = models.ForeignKey(
        LoanType,
        on_delete=models.PROTECT,
        related_name='loans'
    )

    principal = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        validators=[MinValueValidator(MONEY_MIN)]
    )
    interest_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        blank=True,
        help_text="Annual rate copied from the loan type at application time"
    )
    term_months = models.PositiveIntegerField()
    purpose = models.CharField(max_length=255)

    status = StatusField(max_length=30, choices=Status.choices, default=Status.PENDING)

    amount_paid = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    monthly_payment = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    total_repayable = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))

    application_date = models.DateTimeField(default=timezone.now, db_index=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    disbursed_at = models.DateTimeField(null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='loans_created'
    )

    objects = LoanQuerySet.as_manager()

    class Meta:
        ordering = ['-application_date']
        indexes = [
            models.Index(fields=['member', 'status'], name='loan_member_status_idx'),
        ]

    def __str__(self):
        return f"{self.reference} - {self.member.get_full_name()}"

    def save(self, *args, **kwargs):
        if self._state.adding:
            if not self.reference:
                self.reference = generate_reference('LN', Loan)
            if self.interest_rate is None:
                self.interest_rate = self.loan_type.interest_rate
            self.calculate_repayment()
        super().save(*args, **kwargs)

    def calculate_repayment(self):
        figures = InterestCalculator.calculate_repayment(
            self.principal, self.interest_rate, self.term_months
        )
        self.monthly_payment = figures['monthly_payment']
        self.total_repayable = figures['total_repayable']

    # =========================================================================
    # DERIVED FIGURES
    # =========================================================================

    @property
    def outstanding_balance(self):
        return max(self.total_repayable - self.amount_paid, Decimal('0.00'))

    @property
    def outstanding_principal(self):
        return max(self.principal - self.amount_paid, Decimal('0.00'))

    @property
    def is_fully_repaid(self):
        return self.total_repayable > 0 and self.amount_paid >= self.total_repayable

    @property
    def expected_completion_date(self):
        """Date of the last expected payment"""
        if not self.disbursed_at:
            return None
        return add_months(timezone.localtime(self.disbursed_at).date(), self.term_months)

    def is_overdue(self, today=None):
        """
        A running loan is overdue when its final payment date has passed
        without full repayment, or a scheduled installment is unpaid past due.
        """
        if self.status not in RUNNING_LOAN_STATUSES:
            return False
        today = today or local_today()
        completion = self.expected_completion_date
        if completion and completion < today and not self.is_fully_repaid:
            return True
        return self.repayments.past_due(today).exists()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @db_transaction.atomic
    def disburse(self, disbursed_at=None):
        """Mark an approved loan as disbursed and build its repayment schedule"""
        if self.status != self.Status.APPROVED:
            raise ValidationError(f"Cannot disburse loan {self.reference} in status {self.status}")

        self.disbursed_at = disbursed_at or timezone.now()
        self.status = self.Status.ACTIVE
        self.save(update_fields=['disbursed_at', 'status', 'updated_at'])

        schedule = InterestCalculator.generate_amortization_schedule(
            self.principal,
            self.interest_rate,
            self.term_months,
            timezone.localtime(self.disbursed_at).date(),
        )
        LoanRepayment.objects.bulk_create([
            LoanRepayment(
                loan=self,
                installment_number=row['installment_number'],
                due_date=row['due_date'],
                amount_due=row['amount_due'],
            )
            for row in schedule
        ])
        logger.info(f"Loan {self.reference} disbursed with {len(schedule)} installments")

    @db_transaction.atomic
    def record_repayment(self, amount, paid_date=None):
        """
        Apply a repayment to the oldest unpaid installments

        Returns:
            Decimal: the part of `amount` not absorbed by the schedule
        """
        if self.status not in RUNNING_LOAN_STATUSES:
            raise ValidationError(f"Loan {self.reference} is not being repaid")

        remaining = MoneyCalculator.to_decimal(amount)
        if remaining <= 0:
            raise ValidationError("Repayment amount must be positive")
        paid_date = paid_date or local_today()

        applied = Decimal('0.00')
        for installment in self.repayments.unpaid().order_by('installment_number'):
            if remaining <= 0:
                break
            portion = min(remaining, installment.amount_due - installment.amount_paid)
            installment.amount_paid += portion
            installment.paid_date = paid_date
            installment.status = (
                LoanRepayment.Status.PAID
                if installment.amount_paid >= installment.amount_due
                else LoanRepayment.Status.PARTIAL
            )
            installment.save(update_fields=['amount_paid', 'paid_date', 'status', 'updated_at'])
            remaining -= portion
            applied += portion

        self.amount_paid += applied
        if self.is_fully_repaid or not self.repayments.unpaid().exists():
            self.status = self.Status.PAID
        self.save(update_fields=['amount_paid', 'status', 'updated_at'])
        return remaining


class LoanRepayment(BaseModel):
    """Scheduled installment of a disbursed loan"""

    class Status(NormalizedChoices):
        PENDING = 'pending', 'Pending'
        PARTIAL = 'partial', 'Partially Paid'
        PAID = 'paid', 'Paid'

    loan = models.ForeignKey(
        Loan,
        on_delete=models.CASCADE,
        related_name='repayments'
    )
    installment_number = models.PositiveIntegerField()
    due_date = models.DateField(db_index=True)
    amount_due = models.DecimalField(max_digits=15, decimal_places=2)
    amount_paid = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    paid_date = models.DateField(null=True, blank=True)
    status = StatusField(max_length=20, choices=Status.choices, default=Status.PENDING)

    objects = LoanRepaymentQuerySet.as_manager()

    class Meta:
        ordering = ['installment_number']
        constraints = [
            models.UniqueConstraint(
                fields=['loan', 'installment_number'],
                name='unique_loan_installment'
            ),
        ]

    def __str__(self):
        return f"{self.loan.reference} #{self.installment_number} due {self.due_date}"

    @property
    def is_on_time(self):
        return self.status == self.Status.PAID and self.paid_date is not None and self.paid_date <= self.due_date


# =============================================================================
# GUARANTOR & COLLATERAL
# =============================================================================

class Guarantor(BaseModel):
    """A member pledging part of a loan"""

    class Status(NormalizedChoices):
        PENDING = 'pending', 'Pending Sign-off'
        ACTIVE = 'active', 'Active'
        DECLINED = 'declined', 'Declined'
        RELEASED = 'released', 'Released'

    loan = models.ForeignKey(
        Loan,
        on_delete=models.CASCADE,
        related_name='guarantors'
    )
    guarantor = models.ForeignKey(
        Member,
        on_delete=models.PROTECT,
        related_name='guarantees'
    )
    guarantee_amount = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        validators=[MinValueValidator(MONEY_MIN)]
    )
    status = StatusField(max_length=20, choices=Status.choices, default=Status.PENDING)
    responded_at = models.DateTimeField(null=True, blank=True)
    response_comments = models.TextField(blank=True)

    class Meta:
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(fields=['loan', 'guarantor'], name='unique_loan_guarantor'),
        ]

    def __str__(self):
        return f"{self.guarantor.get_full_name()} guarantees {MoneyCalculator.format_currency(self.guarantee_amount)}"

    def clean(self):
        super().clean()
        if self.loan_id and self.guarantor_id and self.loan.member_id == self.guarantor_id:
            raise ValidationError({'guarantor': "A member cannot guarantee their own loan"})


class Collateral(BaseModel):
    """Asset pledged against a loan"""

    class Type(NormalizedChoices):
        LAND = 'land', 'Land'
        BUILDING = 'building', 'Building / Property'
        VEHICLE = 'vehicle', 'Vehicle'
        EQUIPMENT = 'equipment', 'Equipment / Machinery'
        INVENTORY = 'inventory', 'Inventory / Stock'
        SHARES = 'shares', 'Shares'
        OTHER = 'other', 'Other'

    class Status(NormalizedChoices):
        PENDING = 'pending', 'Pending Verification'
        VERIFIED = 'verified', 'Verified'
        REJECTED = 'rejected', 'Rejected'
        RELEASED = 'released', 'Released'

    loan = models.ForeignKey(
        Loan,
        on_delete=models.CASCADE,
        related_name='collaterals'
    )
    collateral_type = StatusField(max_length=20, choices=Type.choices)
    description = models.TextField()
    estimated_value = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        validators=[MinValueValidator(MONEY_MIN)]
    )
    status = StatusField(max_length=20, choices=Status.choices, default=Status.PENDING)

    class Meta:
        ordering = ['created_at']

    def __str__(self):
        return f"{self.get_collateral_type_display()}: {MoneyCalculator.format_currency(self.estimated_value)}"


# =============================================================================
# BUSINESS CONFIGURATION
# =============================================================================

class SystemConfig(models.Model):
    """
    Typed key/value business setting

    Values are stored as text and converted according to `value_type`.
    """

    class ValueType(NormalizedChoices):
        INTEGER = 'integer', 'Integer'
        DECIMAL = 'decimal', 'Decimal'
        BOOLEAN = 'boolean', 'Boolean'
        STRING = 'string', 'String'
        JSON = 'json', 'JSON'

    TRUE_VALUES = ('1', 'true', 'yes', 'on')

    key = models.CharField(max_length=100, primary_key=True)
    value = models.TextField()
    value_type = StatusField(max_length=20, choices=ValueType.choices, default=ValueType.STRING)
    category = models.CharField(max_length=50, default='general', db_index=True)
    description = models.TextField(blank=True)
    is_editable = models.BooleanField(default=True)
    min_value = models.DecimalField(max_digits=18, decimal_places=2, null=True, blank=True)
    max_value = models.DecimalField(max_digits=18, decimal_places=2, null=True, blank=True)

    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='config_changes'
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['category', 'key']
        verbose_name = "System configuration"
        verbose_name_plural = "System configuration"

    def __str__(self):
        return f"{self.key} = {self.value}"

    @property
    def typed_value(self):
        return self.parse(self.value, self.value_type)

    @classmethod
    def parse(cls, raw, value_type):
        """Convert stored text to a Python value"""
        value_type = cls.ValueType.normalize(value_type)
        if value_type == cls.ValueType.INTEGER:
            return int(Decimal(raw))
        if value_type == cls.ValueType.DECIMAL:
            return Decimal(raw)
        if value_type == cls.ValueType.BOOLEAN:
            return str(raw).strip().lower() in cls.TRUE_VALUES
        if value_type == cls.ValueType.JSON:
            return json.loads(raw)
        return raw

    def serialize(self, value):
        """
        Validate `value` against this setting and return its text form

        Raises:
            ValueError: wrong type, out of range
        """
        value_type = self.ValueType.normalize(self.value_type)

        if value_type in (self.ValueType.INTEGER, self.ValueType.DECIMAL):
            try:
                number = Decimal(str(value).strip())
            except (InvalidOperation, ValueError):
                raise ValueError("Value must be a number")
            if not number.is_finite():
                raise ValueError("Value must be a number")
            if value_type == self.ValueType.INTEGER and number != number.to_integral_value():
                raise ValueError("Value must be an integer")
            if self.min_value is not None and number < self.min_value:
                raise ValueError(f"Value must be at least {self.min_value}")
            if self.max_value is not None and number > self.max_value:
                raise ValueError(f"Value must not exceed {self.max_value}")
            if value_type == self.ValueType.INTEGER:
                return str(int(number))
            return f"{number.quantize(Decimal('0.01'))}"

        if value_type == self.ValueType.BOOLEAN:
            if isinstance(value, str):
                return 'true' if value.strip().lower() in self.TRUE_VALUES else 'false'
            return 'true' if value else 'false'

        if value_type == self.ValueType.JSON:
            if isinstance(value, str):
                try:
                    json.loads(value)
                except ValueError:
                    raise ValueError("Value must be valid JSON")
                return value
            return json.dumps(value)

        return str(value)


# =============================================================================
# APPROVAL WORKFLOW
# =============================================================================

class EntityType(NormalizedChoices):
    LOAN = 'loan', 'Loan'
    WITHDRAWAL = 'withdrawal', 'Withdrawal'
    MEMBER_REGISTRATION = 'member_registration', 'Member Registration'


class WorkflowTemplate(BaseModel):
    """
    Ordered approval chain for an entity type and amount band

    Null amount bounds are open; a blank risk class matches any loan type.
    """

    name = models.CharField(max_length=100, unique=True)
    entity_type = StatusField(max_length=30, choices=EntityType.choices, default=EntityType.LOAN)
    min_amount = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)
    max_amount = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)
    risk_class = StatusField(
        max_length=20,
        choices=LoanType.RiskClass.choices,
        blank=True,
        default=''
    )
    is_active = models.BooleanField(default=True, db_index=True)
    description = models.TextField(blank=True)

    class Meta:
        ordering = ['entity_type', 'min_amount']

    def __str__(self):
        return self.name

    def covers_amount(self, amount):
        if amount is None:
            return True
        if self.min_amount is not None and amount < self.min_amount:
            return False
        if self.max_amount is not None and amount > self.max_amount:
            return False
        return True


class ApprovalLevel(BaseModel):
    """One step of a workflow template"""

    template = models.ForeignKey(
        WorkflowTemplate,
        on_delete=models.CASCADE,
        related_name='levels'
    )
    level_number = models.PositiveIntegerField()
    name = models.CharField(max_length=100)
    required_role = StatusField(max_length=20, choices=User.Role.choices)
    timeout_hours = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        ordering = ['level_number']
        constraints = [
            models.UniqueConstraint(
                fields=['template', 'level_number'],
                name='unique_template_level'
            ),
        ]

    def __str__(self):
        return f"{self.template.name} L{self.level_number}: {self.name}"


class WorkflowApproval(BaseModel):
    """
    Running or finished approval of one entity

    current_level only moves forward and a terminal status is final; both
    are enforced on save.
    """

    class Status(NormalizedChoices):
        PENDING = 'pending', 'Pending'
        APPROVED = 'approved', 'Approved'
        REJECTED = 'rejected', 'Rejected'
        CHANGES_REQUESTED = 'changes_requested', 'Changes Requested'
        TIMEOUT = 'timeout', 'Timed Out'

    entity_type = StatusField(max_length=30, choices=EntityType.choices)
    entity_id = models.CharField(max_length=64, db_index=True)
    template = models.ForeignKey(
        WorkflowTemplate,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='workflows'
    )
    current_level = models.PositiveIntegerField(default=0)
    total_levels = models.PositiveIntegerField(default=0)
    status = StatusField(max_length=30, choices=Status.choices, default=Status.PENDING)
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='workflows_requested'
    )
    amount = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)
    auto_approved = models.BooleanField(default=False)
    level_started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    final_comments = models.TextField(blank=True)

    objects = WorkflowApprovalQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['entity_type', 'entity_id'], name='workflow_entity_idx'),
        ]

    def __str__(self):
        return f"{self.entity_type}:{self.entity_id} L{self.current_level}/{self.total_levels} ({self.status})"

    @property
    def is_terminal(self):
        return self.status != self.Status.PENDING

    def save(self, *args, **kwargs):
        if not self._state.adding:
            stored = (
                WorkflowApproval.objects.filter(pk=self.pk)
                .values('current_level', 'status')
                .first()
            )
            if stored:
                if self.current_level < stored['current_level']:
                    raise ValueError("Workflow level cannot move backwards")
                if stored['status'] != self.Status.PENDING and stored['status'] != self.status:
                    raise ValueError(f"Workflow already closed as {stored['status']}")
        super().save(*args, **kwargs)

    def current_level_definition(self):
        if not self.template_id or not self.current_level:
            return None
        return self.template.levels.filter(level_number=self.current_level).first()

    def subject(self):
        """The loan behind a loan workflow, or None"""
        if self.entity_type != EntityType.LOAN:
            return None
        return Loan.objects.filter(pk=self.entity_id).first()


class ApprovalAction(BaseModel):
    """Decision recorded against a workflow level"""

    class Action(NormalizedChoices):
        APPROVE = 'approve', 'Approve'
        REJECT = 'reject', 'Reject'
        REQUEST_CHANGES = 'request_changes', 'Request Changes'

    workflow = models.ForeignKey(
        WorkflowApproval,
        on_delete=models.CASCADE,
        related_name='actions'
    )
    approver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='approval_actions'
    )
    action = StatusField(max_length=20, choices=Action.choices)
    level_number = models.PositiveIntegerField()
    comments = models.TextField(blank=True)

    class Meta:
        ordering = ['created_at']

    def __str__(self):
        return f"{self.action} at L{self.level_number} by {self.approver}"


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class Notification(BaseModel):
    """In-app notification written by the dispatcher"""

    NOTIFICATION_TYPE_CHOICES = [
        ('loan_submitted', 'Loan Application Submitted'),
        ('approval_requested', 'Approval Requested'),
        ('loan_approved', 'Loan Approved'),
        ('loan_rejected', 'Loan Rejected'),
        ('loan_revision_requested', 'Loan Revision Requested'),
        ('workflow_failed', 'Approval Routing Failed'),
        ('workflow_timeout', 'Approval Timed Out'),
        ('guarantor_signoff_requested', 'Guarantor Sign-off Requested'),
        ('guarantor_responded', 'Guarantor Responded'),
    ]

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notifications'
    )
    member = models.ForeignKey(
        Member,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notifications'
    )
    notification_type = models.CharField(
        max_length=50,
        choices=NOTIFICATION_TYPE_CHOICES,
        db_index=True
    )
    title = models.CharField(max_length=200)
    message = models.TextField()
    related_loan = models.ForeignKey(
        Loan,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='notifications'
    )
    is_read = models.BooleanField(default=False, db_index=True)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.title

    def mark_as_read(self):
        """Mark notification as read"""
        if not self.is_read:
            self.is_read = True
            self.read_at = timezone.now()
            self.save(update_fields=['is_read', 'read_at'])
