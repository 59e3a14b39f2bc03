from io import BytesIO

import pytest
from django.urls import reverse
from openpyxl import load_workbook

from cooperative.models import Loan, User, WorkflowApproval


def post_json(client, url, payload):
    return client.post(url, payload, content_type='application/json')


@pytest.fixture
def member_client(client, saver):
    client.force_login(saver.user)
    return client


@pytest.fixture
def application(loan_type):
    def payload(amount, **extra):
        data = {
            'loan_type': str(loan_type.pk),
            'amount': amount,
            'term_months': 12,
            'purpose': 'Shop stock',
        }
        data.update(extra)
        return data
    return payload


@pytest.mark.django_db
class TestEligibilityView:

    def test_eligible(self, member_client, application):
        response = post_json(member_client, reverse('cooperative:loan_eligibility'), application('100000'))

        assert response.status_code == 200
        body = response.json()
        assert body['success'] is True
        assert body['errors'] == []
        assert body['effective_limit'] == '150000.00'

    def test_violations_are_listed(self, member_client, application):
        response = post_json(member_client, reverse('cooperative:loan_eligibility'), application('200000'))

        body = response.json()
        assert body['success'] is False
        assert [v['rule'] for v in body['violations']] == ['loan_limit']
        assert body['errors'] == [body['violations'][0]['message']]

    def test_bad_input(self, member_client):
        response = post_json(member_client, reverse('cooperative:loan_eligibility'), {'amount': 'lots'})
        assert response.status_code == 400
        assert response.json()['success'] is False

    def test_user_without_member_record(self, client, officer, application):
        client.force_login(officer)
        response = post_json(client, reverse('cooperative:loan_eligibility'), application('10000'))
        assert response.status_code == 404

    def test_login_required(self, client, application):
        response = post_json(client, reverse('cooperative:loan_eligibility'), application('10000'))
        assert response.status_code == 302


@pytest.mark.django_db
class TestApplyView:

    def test_auto_approved_application(self, member_client, application):
        response = post_json(member_client, reverse('cooperative:loan_apply'), application('50000'))

        assert response.status_code == 201
        body = response.json()
        assert body['workflow_started'] is True
        assert body['auto_approved'] is True
        assert body['status'] == 'approved'
        assert Loan.objects.get(reference=body['reference']).principal == 50000

    def test_routed_application(self, member_client, application, officer, two_level_template):
        response = post_json(member_client, reverse('cooperative:loan_apply'), application('120000'))

        assert response.status_code == 201
        body = response.json()
        assert body['status'] == 'pending'
        assert body['auto_approved'] is False

    def test_ineligible_application(self, member_client, application):
        response = post_json(member_client, reverse('cooperative:loan_apply'), application('900000'))

        assert response.status_code == 400
        body = response.json()
        assert 'loan_limit' in [v['rule'] for v in body['violations']]
        assert not Loan.objects.exists()

    def test_term_outside_loan_type(self, member_client, application):
        response = post_json(member_client, reverse('cooperative:loan_apply'), application('50000', term_months=36))
        assert response.status_code == 400
        assert not Loan.objects.exists()

    def test_routing_failure_keeps_application(self, member_client, application):
        response = post_json(member_client, reverse('cooperative:loan_apply'), application('120000'))

        assert response.status_code == 202
        body = response.json()
        assert body['workflow_started'] is False
        assert Loan.objects.get(pk=body['loan_id']).status == Loan.Status.PENDING

    def test_retry_routing(self, client, member_client, application, officer, make_template):
        body = post_json(member_client, reverse('cooperative:loan_apply'), application('120000')).json()
        url = reverse('cooperative:loan_retry_workflow', args=[body['loan_id']])

        assert post_json(member_client, url, {}).status_code == 403

        make_template('Small Loan Approval', [User.Role.LOAN_OFFICER])
        client.force_login(officer)
        response = post_json(client, url, {})
        assert response.status_code == 200
        assert response.json()['workflow_started'] is True

        assert post_json(client, url, {}).status_code == 409


@pytest.mark.django_db
class TestWorkflowViews:

    @pytest.fixture
    def workflow(self, member_client, application, officer, manager, two_level_template):
        body = post_json(member_client, reverse('cooperative:loan_apply'), application('120000')).json()
        return WorkflowApproval.objects.get(entity_id=body['loan_id'])

    def action_url(self, workflow):
        return reverse('cooperative:workflow_action', args=[workflow.pk])

    def test_pending_queue(self, client, workflow, officer, manager):
        client.force_login(officer)
        body = client.get(reverse('cooperative:workflow_pending')).json()
        assert [w['id'] for w in body['workflows']] == [str(workflow.pk)]
        assert body['workflows'][0]['required_role'] == 'loan_officer'

        client.force_login(manager)
        assert client.get(reverse('cooperative:workflow_pending')).json()['workflows'] == []

    def test_approve(self, client, workflow, officer):
        client.force_login(officer)
        response = post_json(client, self.action_url(workflow), {'action': 'approve'})

        assert response.status_code == 200
        assert response.json()['workflow']['current_level'] == 2

    def test_wrong_level_role(self, client, workflow, manager):
        client.force_login(manager)
        response = post_json(client, self.action_url(workflow), {'action': 'approve'})
        assert response.status_code == 403

    def test_rejection_needs_comments(self, client, workflow, officer):
        client.force_login(officer)
        response = post_json(client, self.action_url(workflow), {'action': 'reject', 'comments': 'no'})
        assert response.status_code == 400

    def test_closed_workflow(self, client, workflow, officer):
        client.force_login(officer)
        post_json(client, self.action_url(workflow), {
            'action': 'reject', 'comments': 'Repayment capacity too low',
        })
        response = post_json(client, self.action_url(workflow), {'action': 'approve'})
        assert response.status_code == 409

    def test_stats_permissions(self, client, workflow, officer, manager):
        client.force_login(officer)
        assert client.get(reverse('cooperative:workflow_stats')).status_code == 403

        client.force_login(manager)
        body = client.get(reverse('cooperative:workflow_stats')).json()
        assert body['stats']['by_status']['pending'] == 1


@pytest.mark.django_db
class TestCreditAndExportViews:

    def test_credit_score(self, member_client):
        body = member_client.get(reverse('cooperative:credit_score')).json()
        assert body['success'] is True
        assert body['rating'] == 'NotRated'
        assert 300 <= body['score'] <= 850

    def test_export_requires_staff(self, member_client):
        assert member_client.get(reverse('cooperative:loan_export')).status_code == 403

    def test_export_workbook(self, client, officer, saver, make_loan):
        loan = make_loan(saver, '20000')
        make_loan(saver, '30000', status=Loan.Status.REJECTED)
        client.force_login(officer)

        response = client.get(reverse('cooperative:loan_export'), {'status': 'Pending'})

        assert response.status_code == 200
        assert response['Content-Type'].startswith('application/vnd.openxmlformats')
        sheet = load_workbook(BytesIO(response.content))['Loans']
        assert sheet['A1'].value == 'LOAN APPLICATIONS'
        assert sheet['A3'].value == 'Reference'
        assert sheet['A4'].value == loan.reference
        assert sheet['A5'].value == 'TOTAL'
        assert sheet['E5'].value == 20000

    def test_export_bad_status(self, client, officer):
        client.force_login(officer)
        assert client.get(reverse('cooperative:loan_export'), {'status': 'lost'}).status_code == 400
