from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('cooperative', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='guarantor',
            name='responded_at',
            field=models.DateTimeField(blank=True, null=True),
        ),
        migrations.AddField(
            model_name='guarantor',
            name='response_comments',
            field=models.TextField(blank=True),
        ),
        migrations.AlterField(
            model_name='notification',
            name='notification_type',
            field=models.CharField(choices=[('loan_submitted', 'Loan Application Submitted'), ('approval_requested', 'Approval Requested'), ('loan_approved', 'Loan Approved'), ('loan_rejected', 'Loan Rejected'), ('loan_revision_requested', 'Loan Revision Requested'), ('workflow_failed', 'Approval Routing Failed'), ('workflow_timeout', 'Approval Timed Out'), ('guarantor_signoff_requested', 'Guarantor Sign-off Requested'), ('guarantor_responded', 'Guarantor Responded')], db_index=True, max_length=50),
        ),
    ]
