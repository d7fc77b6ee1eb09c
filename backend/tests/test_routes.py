# Overview: Pytest coverage for the HTTP API surface and error mapping.

"""
API Route Tests

Exercises each blueprint through the Flask test client and checks the
error mapping: validation 400, missing resources 404, business rule
conflicts 409.
"""

import pytest


class TestPublicEndpoints:

    def test_health_degraded_without_plans(self, client, db_session):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json['status'] == 'degraded'
        assert response.json['checks']['database']['status'] == 'healthy'
        assert response.json['checks']['loyalty_config']['details']['active_plans'] == 0

    def test_health_healthy_when_configured(self, client, db_session, plan):
        client.get('/api/points/settings')
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json['status'] == 'healthy'

    def test_version(self, client, db_session):
        response = client.get('/version')
        assert response.status_code == 200
        assert 'api_version' in response.json

    def test_cors_header_for_local_frontend(self, client, db_session):
        response = client.get('/version', headers={'Origin': 'http://localhost:3000'})
        assert response.headers['Access-Control-Allow-Origin'] == 'http://localhost:3000'


class TestPointsRoutes:

    def test_settings_roundtrip(self, client, db_session):
        response = client.get('/api/points/settings')
        assert response.status_code == 200
        assert response.json['regular_earn_rate'] == 50

        response = client.put('/api/points/settings', json={'member_earn_rate': 30})
        assert response.status_code == 200
        assert response.json['member_earn_rate'] == 30
        assert response.json['regular_earn_rate'] == 50

    def test_settings_invalid(self, client, db_session):
        response = client.put('/api/points/settings', json={'points_per_yen': 0})
        assert response.status_code == 400

    def test_award_redeem_flow(self, client, db_session, customer):
        response = client.post(f'/api/points/customers/{customer.id}/award', json={'amount': 100, 'order_ref': 'ORD-1'})
        assert response.status_code == 201
        assert response.json['new_balance'] == 100
        assert response.json['transaction']['type'] == 'EARNED'

        response = client.post(f'/api/points/customers/{customer.id}/redeem', json={'points': 30})
        assert response.status_code == 201
        assert response.json['value_in_yen'] == 30

        response = client.get(f'/api/points/customers/{customer.id}')
        assert response.status_code == 200
        assert response.json['points_balance'] == 70
        assert [row['amount'] for row in response.json['history']] == [-30, 100]

    def test_redeem_insufficient_is_conflict(self, client, db_session, customer):
        client.post(f'/api/points/customers/{customer.id}/award', json={'amount': 50})
        response = client.post(f'/api/points/customers/{customer.id}/redeem', json={'points': 51})
        assert response.status_code == 409
        assert 'Insufficient points' in response.json['error']

    def test_refund_and_adjust(self, client, db_session, customer):
        client.post(f'/api/points/customers/{customer.id}/award', json={'amount': 20})
        response = client.post(f'/api/points/customers/{customer.id}/refund', json={'points': 50})
        assert response.status_code == 201
        assert response.json['points_deducted'] == 20

        response = client.post(f'/api/points/customers/{customer.id}/adjust', json={'amount': 15, 'reason': 'Goodwill'})
        assert response.status_code == 201
        assert response.json['new_balance'] == 15

    def test_quote_points(self, client, db_session, customer):
        response = client.post(f'/api/points/customers/{customer.id}/quote', json={'amount': 500000})
        assert response.status_code == 200
        assert response.json['points'] == 100

    @pytest.mark.parametrize('path,body', [
        ('award', {}),
        ('redeem', {'order_ref': 'ORD-1'}),
        ('adjust', {'amount': 5}),
    ])
    def test_missing_fields(self, client, db_session, customer, path, body):
        response = client.post(f'/api/points/customers/{customer.id}/{path}', json=body)
        assert response.status_code == 400

    def test_non_json_body(self, client, db_session, customer):
        response = client.post(f'/api/points/customers/{customer.id}/award', data='amount=5')
        assert response.status_code == 400

    def test_unknown_customer(self, client, db_session):
        assert client.get('/api/points/customers/9999').status_code == 404
        response = client.post('/api/points/customers/9999/award', json={'amount': 1})
        assert response.status_code == 404

    def test_transactions_and_liability(self, client, db_session, customer, other_customer):
        client.post(f'/api/points/customers/{customer.id}/award', json={'amount': 10, 'order_ref': 'ORD-A'})
        client.post(f'/api/points/customers/{other_customer.id}/award', json={'amount': 5, 'order_ref': 'ORD-B'})

        response = client.get('/api/points/transactions?order_ref=ORD-A')
        assert [row['customer_id'] for row in response.json['items']] == [customer.id]

        response = client.get('/api/points/liability')
        assert response.json['total_points'] == 15


class TestMembershipRoutes:

    def test_plan_crud(self, client, db_session):
        response = client.post('/api/memberships/plans', json={
            'name': 'Weekend Pass', 'price': 300000, 'hours_included': 8, 'overage_rate': 35000,
        })
        assert response.status_code == 201
        plan_id = response.json['id']

        response = client.patch(f'/api/memberships/plans/{plan_id}', json={'price': 350000})
        assert response.status_code == 200
        assert response.json['price'] == 350000

        response = client.get('/api/memberships/plans')
        assert [p['id'] for p in response.json] == [plan_id]

        response = client.delete(f'/api/memberships/plans/{plan_id}')
        assert response.status_code == 200
        assert client.get('/api/memberships/plans').json == []

    def test_duplicate_plan_name(self, client, db_session, plan):
        response = client.post('/api/memberships/plans', json={'name': 'Monthly Pass', 'price': 1})
        assert response.status_code == 409

    def test_purchase_and_duplicate(self, client, db_session, customer, plan):
        response = client.post('/api/memberships/purchase', json={'customer_id': customer.id, 'plan_id': plan.id})
        assert response.status_code == 201
        assert response.json['membership']['status'] == 'ACTIVE'
        assert response.json['membership']['plan']['name'] == 'Monthly Pass'
        assert response.json['bonus_points'] == 200

        response = client.post('/api/memberships/purchase', json={'customer_id': customer.id, 'plan_id': plan.id})
        assert response.status_code == 409

    def test_purchase_unknown_plan(self, client, db_session, customer):
        response = client.post('/api/memberships/purchase', json={'customer_id': customer.id, 'plan_id': 9999})
        assert response.status_code == 404

    def test_active_membership(self, client, db_session, customer, other_customer, membership):
        response = client.get(f'/api/memberships/customers/{customer.id}/active')
        assert response.json['membership']['id'] == membership.id
        response = client.get(f'/api/memberships/customers/{other_customer.id}/active')
        assert response.json['membership'] is None

    def test_usage_and_quote(self, client, db_session, customer, membership):
        response = client.post(f'/api/memberships/{membership.id}/usage', json={'hours': 18})
        assert response.status_code == 201
        assert response.json['remaining_hours'] == 2

        response = client.post('/api/memberships/quote', json={'customer_id': customer.id, 'hours': 5})
        assert response.status_code == 200
        assert response.json['total_charge'] == 90000
        assert response.json['membership']['remaining_hours'] == 0

        response = client.get(f'/api/memberships/{membership.id}/usage')
        assert len(response.json['items']) == 1

    def test_usage_invalid_hours(self, client, db_session, membership):
        response = client.post(f'/api/memberships/{membership.id}/usage', json={'hours': 'lots'})
        assert response.status_code == 400

    def test_renew_and_cancel(self, client, db_session, membership):
        response = client.post(f'/api/memberships/{membership.id}/renew', json={'carry_over_unused_hours': True})
        assert response.status_code == 201
        renewed_id = response.json['membership']['id']
        assert response.json['membership']['carried_over_hours'] == 20

        response = client.post(f'/api/memberships/{renewed_id}/cancel')
        assert response.status_code == 200
        assert response.json['membership']['status'] == 'CANCELLED'

        response = client.post(f'/api/memberships/{renewed_id}/cancel')
        assert response.status_code == 409

    def test_renew_without_body(self, client, db_session, membership):
        response = client.post(f'/api/memberships/{membership.id}/renew')
        assert response.status_code == 201
        assert response.json['membership']['carried_over_hours'] == 0
        assert response.json['membership']['status'] == 'ACTIVE'

    def test_stats(self, client, db_session, membership):
        response = client.get('/api/memberships/stats')
        assert response.status_code == 200
        assert response.json['active_members'] == 1
        assert response.json['total_revenue'] == 8000


class TestSeatRoutes:

    def test_session_flow(self, client, db_session):
        response = client.post('/api/seats/sessions', json={'seat_label': 'T3'})
        assert response.status_code == 201
        session_id = response.json['session']['id']

        response = client.get(f'/api/seats/sessions/{session_id}/charge')
        assert response.status_code == 200
        assert response.json['running'] is True

        response = client.post(f'/api/seats/sessions/{session_id}/stop')
        assert response.status_code == 200
        assert response.json['charge'] == 0
        assert response.json['session']['billed_minutes'] == 0

        response = client.post(f'/api/seats/sessions/{session_id}/close')
        assert response.status_code == 200
        assert response.json['session']['closed_at'] is not None

    def test_seat_conflict(self, client, db_session):
        client.post('/api/seats/sessions', json={'seat_label': 'T3'})
        response = client.post('/api/seats/sessions', json={'seat_label': 'T3'})
        assert response.status_code == 409

    def test_start_later(self, client, db_session):
        response = client.post('/api/seats/sessions', json={'seat_label': 'T4', 'start_timer': False})
        session_id = response.json['session']['id']
        assert response.json['session']['started_at'] is None

        response = client.post(f'/api/seats/sessions/{session_id}/start')
        assert response.status_code == 200
        assert response.json['session']['started_at'] is not None

    def test_unknown_session(self, client, db_session):
        assert client.get('/api/seats/sessions/9999').status_code == 404

    def test_billing_quote_by_minutes(self, client, db_session):
        response = client.get('/api/billing/quote?minutes=291')
        assert response.status_code == 200
        assert response.json['total_charge'] == 2100
        assert response.json['rate_applied'] == '5hour'
        assert response.json['formatted'] == '¥2,100'

    def test_billing_quote_requires_input(self, client, db_session):
        assert client.get('/api/billing/quote').status_code == 400
        assert client.get('/api/billing/quote?minutes=-5').status_code == 400
        assert client.get('/api/billing/quote?started_at=yesterday').status_code == 400
