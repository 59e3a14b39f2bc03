import cooperative.models.all_models
import cooperative.models.base
import cooperative.utils.helpers
import django.contrib.auth.validators
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
import uuid
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


ROLE_CHOICES = [
    ('member', 'Member'),
    ('loan_officer', 'Loan Officer'),
    ('manager', 'Manager'),
    ('committee', 'Loan Committee'),
    ('president', 'President'),
    ('admin', 'Administrator'),
]

RISK_CLASS_CHOICES = [('low', 'Low'), ('standard', 'Standard'), ('high', 'High')]

ENTITY_TYPE_CHOICES = [
    ('loan', 'Loan'),
    ('withdrawal', 'Withdrawal'),
    ('member_registration', 'Member Registration'),
]


def base_fields():
    return [
        ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
        ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, help_text='When this record was created')),
        ('updated_at', models.DateTimeField(auto_now=True, help_text='When this record was last updated')),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('username', models.CharField(error_messages={'unique': 'A user with that username already exists.'}, help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.', max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name='username')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('email', models.EmailField(blank=True, max_length=254, verbose_name='email address')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('role', cooperative.models.base.StatusField(choices=ROLE_CHOICES, db_index=True, default='member', help_text='Role used for permissions and approval levels', max_length=20)),
                ('phone', models.CharField(blank=True, max_length=17)),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'ordering': ['username'],
            },
            managers=[
                ('objects', cooperative.models.all_models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Member',
            fields=base_fields() + [
                ('member_number', models.CharField(blank=True, help_text='Auto-generated member number', max_length=30, unique=True)),
                ('first_name', models.CharField(max_length=100)),
                ('last_name', models.CharField(max_length=100)),
                ('email', models.EmailField(blank=True, max_length=254)),
                ('phone', models.CharField(blank=True, max_length=17)),
                ('membership_type', cooperative.models.base.StatusField(choices=[('regular', 'Regular'), ('associate', 'Associate'), ('staff', 'Staff')], db_index=True, default='regular', max_length=20)),
                ('status', cooperative.models.base.StatusField(choices=[('active', 'Active'), ('probation', 'Probation'), ('suspended', 'Suspended'), ('inactive', 'Inactive')], db_index=True, default='active', max_length=20)),
                ('join_date', models.DateField(default=cooperative.utils.helpers.local_today)),
                ('user', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='member', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['last_name', 'first_name'],
            },
        ),
        migrations.CreateModel(
            name='LoanType',
            fields=base_fields() + [
                ('name', models.CharField(max_length=100, unique=True)),
                ('code', models.CharField(max_length=20, unique=True)),
                ('description', models.TextField(blank=True)),
                ('interest_rate', models.DecimalField(decimal_places=2, default=Decimal('12.00'), help_text='Annual interest rate in percent', max_digits=5, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])),
                ('min_amount', models.DecimalField(decimal_places=2, default=Decimal('10000.00'), max_digits=15, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('max_amount', models.DecimalField(decimal_places=2, default=Decimal('1000000.00'), max_digits=15, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('min_term_months', models.PositiveIntegerField(default=1)),
                ('max_term_months', models.PositiveIntegerField(default=24)),
                ('requires_guarantor', models.BooleanField(default=False)),
                ('guarantor_count', models.PositiveIntegerField(default=0)),
                ('risk_class', cooperative.models.base.StatusField(choices=RISK_CLASS_CHOICES, db_index=True, default='standard', max_length=20)),
                ('is_active', models.BooleanField(db_index=True, default=True)),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Contribution',
            fields=base_fields() + [
                ('amount', models.DecimalField(decimal_places=2, max_digits=15, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('contribution_type', cooperative.models.base.StatusField(choices=[('mandatory', 'Mandatory'), ('voluntary', 'Voluntary')], db_index=True, max_length=20)),
                ('status', cooperative.models.base.StatusField(choices=[('completed', 'Completed'), ('pending', 'Pending'), ('reversed', 'Reversed')], db_index=True, default='completed', max_length=20)),
                ('transaction_date', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('reference', models.CharField(blank=True, max_length=30, unique=True)),
                ('description', models.CharField(blank=True, max_length=255)),
                ('member', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='contributions', to='cooperative.member')),
            ],
            options={
                'ordering': ['-transaction_date'],
                'indexes': [models.Index(fields=['member', 'contribution_type', 'status'], name='contribution_member_type_idx')],
            },
        ),
        migrations.CreateModel(
            name='Loan',
            fields=base_fields() + [
                ('reference', models.CharField(blank=True, help_text='Application reference number', max_length=30, unique=True)),
                ('principal', models.DecimalField(decimal_places=2, max_digits=15, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('interest_rate', models.DecimalField(blank=True, decimal_places=2, help_text='Annual rate copied from the loan type at application time', max_digits=5)),
                ('term_months', models.PositiveIntegerField()),
                ('purpose', models.CharField(max_length=255)),
                ('status', cooperative.models.base.StatusField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('disbursed', 'Disbursed'), ('active', 'Active'), ('paid', 'Paid'), ('rejected', 'Rejected'), ('revision_requested', 'Revision Requested'), ('defaulted', 'Defaulted'), ('written_off', 'Written Off')], db_index=True, default='pending', max_length=30)),
                ('amount_paid', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
                ('monthly_payment', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
                ('total_repayable', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
                ('application_date', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('approved_at', models.DateTimeField(blank=True, null=True)),
                ('rejected_at', models.DateTimeField(blank=True, null=True)),
                ('disbursed_at', models.DateTimeField(blank=True, null=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='loans_created', to=settings.AUTH_USER_MODEL)),
                ('loan_type', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='loans', to='cooperative.loantype')),
                ('member', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='loans', to='cooperative.member')),
            ],
            options={
                'ordering': ['-application_date'],
                'indexes': [models.Index(fields=['member', 'status'], name='loan_member_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='LoanRepayment',
            fields=base_fields() + [
                ('installment_number', models.PositiveIntegerField()),
                ('due_date', models.DateField(db_index=True)),
                ('amount_due', models.DecimalField(decimal_places=2, max_digits=15)),
                ('amount_paid', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
                ('paid_date', models.DateField(blank=True, null=True)),
                ('status', cooperative.models.base.StatusField(choices=[('pending', 'Pending'), ('partial', 'Partially Paid'), ('paid', 'Paid')], db_index=True, default='pending', max_length=20)),
                ('loan', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='repayments', to='cooperative.loan')),
            ],
            options={
                'ordering': ['installment_number'],
                'constraints': [models.UniqueConstraint(fields=('loan', 'installment_number'), name='unique_loan_installment')],
            },
        ),
        migrations.CreateModel(
            name='Guarantor',
            fields=base_fields() + [
                ('guarantee_amount', models.DecimalField(decimal_places=2, max_digits=15, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('status', cooperative.models.base.StatusField(choices=[('pending', 'Pending Sign-off'), ('active', 'Active'), ('declined', 'Declined'), ('released', 'Released')], db_index=True, default='pending', max_length=20)),
                ('guarantor', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='guarantees', to='cooperative.member')),
                ('loan', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='guarantors', to='cooperative.loan')),
            ],
            options={
                'ordering': ['created_at'],
                'constraints': [models.UniqueConstraint(fields=('loan', 'guarantor'), name='unique_loan_guarantor')],
            },
        ),
        migrations.CreateModel(
            name='Collateral',
            fields=base_fields() + [
                ('collateral_type', cooperative.models.base.StatusField(choices=[('land', 'Land'), ('building', 'Building / Property'), ('vehicle', 'Vehicle'), ('equipment', 'Equipment / Machinery'), ('inventory', 'Inventory / Stock'), ('shares', 'Shares'), ('other', 'Other')], db_index=True, max_length=20)),
                ('description', models.TextField()),
                ('estimated_value', models.DecimalField(decimal_places=2, max_digits=15, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('status', cooperative.models.base.StatusField(choices=[('pending', 'Pending Verification'), ('verified', 'Verified'), ('rejected', 'Rejected'), ('released', 'Released')], db_index=True, default='pending', max_length=20)),
                ('loan', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='collaterals', to='cooperative.loan')),
            ],
            options={
                'ordering': ['created_at'],
            },
        ),
        migrations.CreateModel(
            name='SystemConfig',
            fields=[
                ('key', models.CharField(max_length=100, primary_key=True, serialize=False)),
                ('value', models.TextField()),
                ('value_type', cooperative.models.base.StatusField(choices=[('integer', 'Integer'), ('decimal', 'Decimal'), ('boolean', 'Boolean'), ('string', 'String'), ('json', 'JSON')], db_index=True, default='string', max_length=20)),
                ('category', models.CharField(db_index=True, default='general', max_length=50)),
                ('description', models.TextField(blank=True)),
                ('is_editable', models.BooleanField(default=True)),
                ('min_value', models.DecimalField(blank=True, decimal_places=2, max_digits=18, null=True)),
                ('max_value', models.DecimalField(blank=True, decimal_places=2, max_digits=18, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='config_changes', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'System configuration',
                'verbose_name_plural': 'System configuration',
                'ordering': ['category', 'key'],
            },
        ),
        migrations.CreateModel(
            name='WorkflowTemplate',
            fields=base_fields() + [
                ('name', models.CharField(max_length=100, unique=True)),
                ('entity_type', cooperative.models.base.StatusField(choices=ENTITY_TYPE_CHOICES, db_index=True, default='loan', max_length=30)),
                ('min_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=15, null=True)),
                ('max_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=15, null=True)),
                ('risk_class', cooperative.models.base.StatusField(blank=True, choices=RISK_CLASS_CHOICES, db_index=True, default='', max_length=20)),
                ('is_active', models.BooleanField(db_index=True, default=True)),
                ('description', models.TextField(blank=True)),
            ],
            options={
                'ordering': ['entity_type', 'min_amount'],
            },
        ),
        migrations.CreateModel(
            name='ApprovalLevel',
            fields=base_fields() + [
                ('level_number', models.PositiveIntegerField()),
                ('name', models.CharField(max_length=100)),
                ('required_role', cooperative.models.base.StatusField(choices=ROLE_CHOICES, db_index=True, max_length=20)),
                ('timeout_hours', models.PositiveIntegerField(blank=True, null=True)),
                ('template', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='levels', to='cooperative.workflowtemplate')),
            ],
            options={
                'ordering': ['level_number'],
                'constraints': [models.UniqueConstraint(fields=('template', 'level_number'), name='unique_template_level')],
            },
        ),
        migrations.CreateModel(
            name='WorkflowApproval',
            fields=base_fields() + [
                ('entity_type', cooperative.models.base.StatusField(choices=ENTITY_TYPE_CHOICES, db_index=True, max_length=30)),
                ('entity_id', models.CharField(db_index=True, max_length=64)),
                ('current_level', models.PositiveIntegerField(default=0)),
                ('total_levels', models.PositiveIntegerField(default=0)),
                ('status', cooperative.models.base.StatusField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected'), ('changes_requested', 'Changes Requested'), ('timeout', 'Timed Out')], db_index=True, default='pending', max_length=30)),
                ('amount', models.DecimalField(blank=True, decimal_places=2, max_digits=15, null=True)),
                ('auto_approved', models.BooleanField(default=False)),
                ('level_started_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('final_comments', models.TextField(blank=True)),
                ('requested_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='workflows_requested', to=settings.AUTH_USER_MODEL)),
                ('template', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='workflows', to='cooperative.workflowtemplate')),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['entity_type', 'entity_id'], name='workflow_entity_idx')],
            },
        ),
        migrations.CreateModel(
            name='ApprovalAction',
            fields=base_fields() + [
                ('action', cooperative.models.base.StatusField(choices=[('approve', 'Approve'), ('reject', 'Reject'), ('request_changes', 'Request Changes')], db_index=True, max_length=20)),
                ('level_number', models.PositiveIntegerField()),
                ('comments', models.TextField(blank=True)),
                ('approver', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='approval_actions', to=settings.AUTH_USER_MODEL)),
                ('workflow', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='actions', to='cooperative.workflowapproval')),
            ],
            options={
                'ordering': ['created_at'],
            },
        ),
        migrations.CreateModel(
            name='Notification',
            fields=base_fields() + [
                ('notification_type', models.CharField(choices=[('loan_submitted', 'Loan Application Submitted'), ('approval_requested', 'Approval Requested'), ('loan_approved', 'Loan Approved'), ('loan_rejected', 'Loan Rejected'), ('loan_revision_requested', 'Loan Revision Requested'), ('workflow_failed', 'Approval Routing Failed'), ('workflow_timeout', 'Approval Timed Out')], db_index=True, max_length=50)),
                ('title', models.CharField(max_length=200)),
                ('message', models.TextField()),
                ('is_read', models.BooleanField(db_index=True, default=False)),
                ('read_at', models.DateTimeField(blank=True, null=True)),
                ('member', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to='cooperative.member')),
                ('recipient', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to=settings.AUTH_USER_MODEL)),
                ('related_loan', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='notifications', to='cooperative.loan')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
    ]
