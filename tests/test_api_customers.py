"""
Tests for the customer API endpoints.

Tests cover:
- Restaurant resolution from header or query parameter
- Signup, lookup and login
- Balance, tier and history reads
- Earn events and purchases, including error responses
"""
import pytest

from loyalty.extensions import db
from tests.factories import make_restaurant, make_reward


def error_code(response):
    return response.get_json()['error']['code']


class TestRestaurantContext:

    def test_missing_restaurant(self, client, customer):
        response = client.get(f'/api/customers/{customer.id}')
        assert response.status_code == 400
        assert error_code(response) == 'RESTAURANT_REQUIRED'

    def test_unknown_restaurant(self, client, customer):
        response = client.get(f'/api/customers/{customer.id}', headers={'X-Restaurant-Slug': 'nowhere'})
        assert response.status_code == 404
        assert error_code(response) == 'RESTAURANT_NOT_FOUND'

    def test_inactive_restaurant(self, client, restaurant, customer, headers):
        restaurant.is_active = False
        db.session.commit()

        response = client.get(f'/api/customers/{customer.id}', headers=headers)
        assert response.status_code == 403
        assert error_code(response) == 'RESTAURANT_INACTIVE'

    def test_query_parameter(self, client, restaurant, customer):
        response = client.get(f'/api/customers/{customer.id}?restaurant={restaurant.slug.upper()}')
        assert response.status_code == 200
        assert response.get_json()['customer']['email'] == 'sarah@example.com'

    def test_customer_of_other_restaurant_not_found(self, client, customer):
        other = make_restaurant(slug='other-place')
        response = client.get(f'/api/customers/{customer.id}', headers={'X-Restaurant-Slug': other.slug})
        assert response.status_code == 404
        assert error_code(response) == 'CUSTOMER_NOT_FOUND'


class TestSignupAndLookup:

    def test_signup(self, client, headers):
        response = client.post('/api/customers', headers=headers, json={
            'first_name': 'Omar',
            'last_name': 'Haddad',
            'email': 'Omar@Example.com',
            'date_of_birth': '1990-04-12',
        })

        assert response.status_code == 201
        customer = response.get_json()['customer']
        assert customer['email'] == 'omar@example.com'
        assert customer['current_tier'] == 'bronze'
        assert customer['total_points'] == 0
        assert customer['date_of_birth'] == '1990-04-12'

    def test_signup_duplicate_email(self, client, headers, customer):
        response = client.post('/api/customers', headers=headers, json={
            'first_name': 'Sarah', 'last_name': 'Ahmed', 'email': 'SARAH@example.com',
        })
        assert response.status_code == 409
        assert error_code(response) == 'DUPLICATE_ENTRY'

    def test_signup_invalid_email(self, client, headers):
        response = client.post('/api/customers', headers=headers, json={
            'first_name': 'Omar', 'last_name': 'Haddad', 'email': 'omar',
        })
        assert response.status_code == 400
        body = response.get_json()['error']
        assert body['code'] == 'INVALID_EMAIL'
        assert body['details'] == {'field': 'email'}

    def test_lookup(self, client, headers, customer):
        found = client.get('/api/customers/lookup?email=sarah@example.com', headers=headers).get_json()
        assert found['exists'] is True
        assert found['customer']['id'] == customer.id

        missing = client.get('/api/customers/lookup?email=nobody@example.com', headers=headers).get_json()
        assert missing == {'exists': False, 'customer': None}

    def test_lookup_requires_email(self, client, headers):
        response = client.get('/api/customers/lookup', headers=headers)
        assert response.status_code == 400
        assert error_code(response) == 'MISSING_FIELD'

    def test_login(self, client, headers, customer):
        response = client.post('/api/customers/login', headers=headers, json={'email': 'sarah@example.com'})
        assert response.status_code == 200
        assert response.get_json()['customer']['id'] == customer.id

    def test_login_unknown_email(self, client, headers):
        response = client.post('/api/customers/login', headers=headers, json={'email': 'nobody@example.com'})
        assert response.status_code == 404

    def test_signup_non_string_name(self, client, headers):
        response = client.post('/api/customers', headers=headers, json={
            'first_name': 5, 'last_name': 'Haddad', 'email': 'omar@example.com',
        })
        assert response.status_code == 400
        body = response.get_json()['error']
        assert body['code'] == 'INVALID_FIRST_NAME'
        assert body['details'] == {'field': 'first_name'}

    def test_login_non_string_email(self, client, headers):
        response = client.post('/api/customers/login', headers=headers, json={'email': 5})
        assert response.status_code == 400
        assert error_code(response) == 'INVALID_EMAIL'

    @pytest.mark.parametrize('path', ['', '/login'])
    def test_body_must_be_an_object(self, client, headers, path):
        response = client.post(f'/api/customers{path}', headers=headers, json=['omar@example.com'])
        assert response.status_code == 400
        assert error_code(response) == 'INVALID_REQUEST'


class TestBalanceAndTier:

    def test_balance(self, client, headers, customer):
        response = client.get(f'/api/customers/{customer.id}/balance', headers=headers)
        assert response.status_code == 200
        assert response.get_json() == {
            'customer_id': customer.id,
            'total_points': 250,
            'lifetime_points': 650,
            'current_tier': 'silver',
            'tier_progress': 65,
        }

    def test_response_keys_keep_declared_order(self, client, headers, customer):
        response = client.get(f'/api/customers/{customer.id}/balance', headers=headers)
        assert list(response.get_json()) == [
            'customer_id', 'total_points', 'lifetime_points', 'current_tier', 'tier_progress',
        ]

    def test_tier(self, client, headers, customer):
        data = client.get(f'/api/customers/{customer.id}/tier', headers=headers).get_json()
        assert data['tier'] == 'silver'
        assert data['progress_percent'] == 65
        assert data['next_tier'] == 'gold'
        assert data['points_to_next'] == 350
        assert data['next_threshold'] == 1000

    def test_unknown_customer(self, client, headers):
        response = client.get('/api/customers/9999/balance', headers=headers)
        assert response.status_code == 404
        assert error_code(response) == 'CUSTOMER_NOT_FOUND'


class TestHistory:

    def test_newest_first_with_pagination(self, client, headers, customer):
        for description in ('first', 'second', 'third'):
            client.post(f'/api/customers/{customer.id}/events', headers=headers, json={
                'type': 'bonus', 'points': 10, 'description': description,
            })

        data = client.get(f'/api/customers/{customer.id}/history?limit=2', headers=headers).get_json()
        assert data['total'] == 3
        assert [t['description'] for t in data['transactions']] == ['third', 'second']

        page_two = client.get(
            f'/api/customers/{customer.id}/history?limit=2&offset=2', headers=headers
        ).get_json()
        assert [t['description'] for t in page_two['transactions']] == ['first']

    def test_filter_by_type(self, client, headers, customer):
        client.post(f'/api/customers/{customer.id}/events', headers=headers, json={'type': 'bonus', 'points': 10})
        client.post(f'/api/customers/{customer.id}/events', headers=headers, json={'type': 'referral', 'points': 25})

        data = client.get(f'/api/customers/{customer.id}/history?type=referral', headers=headers).get_json()
        assert data['total'] == 1
        assert data['transactions'][0]['type'] == 'referral'

    def test_limit_capped(self, client, headers, customer):
        data = client.get(f'/api/customers/{customer.id}/history?limit=500', headers=headers).get_json()
        assert data['limit'] == 100

    def test_negative_offset_rejected(self, client, headers, customer):
        response = client.get(f'/api/customers/{customer.id}/history?offset=-1', headers=headers)
        assert response.status_code == 400


class TestEvents:

    def test_bonus_event(self, client, headers, customer):
        response = client.post(f'/api/customers/{customer.id}/events', headers=headers, json={
            'type': 'bonus', 'points': 50, 'description': 'Birthday',
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['transaction']['points'] == 50
        assert data['transaction']['balance_after'] == 300
        assert data['balance']['total_points'] == 300
        assert data['balance']['lifetime_points'] == 700

    @pytest.mark.parametrize('body', [{'points': 10}, {'type': 'bonus'}])
    def test_missing_fields(self, client, headers, customer, body):
        response = client.post(f'/api/customers/{customer.id}/events', headers=headers, json=body)
        assert response.status_code == 400
        assert error_code(response) == 'MISSING_FIELD'

    def test_invalid_amount(self, client, headers, customer):
        response = client.post(f'/api/customers/{customer.id}/events', headers=headers, json={
            'type': 'bonus', 'points': -5,
        })
        assert response.status_code == 400
        body = response.get_json()['error']
        assert body['code'] == 'INVALID_AMOUNT'
        assert body['details'] == {'amount': -5, 'transaction_type': 'bonus'}

    def test_body_must_be_an_object(self, client, headers, customer):
        response = client.post(f'/api/customers/{customer.id}/events', headers=headers, json=[50])
        assert response.status_code == 400
        assert error_code(response) == 'INVALID_REQUEST'

    def test_unknown_type(self, client, headers, customer):
        response = client.post(f'/api/customers/{customer.id}/events', headers=headers, json={
            'type': 'cashback', 'points': 5,
        })
        assert response.status_code == 400
        assert error_code(response) == 'INVALID_TRANSACTION_TYPE'

    def test_redemption_event(self, client, headers, restaurant, customer):
        dessert = make_reward(restaurant, points_required=150)
        response = client.post(f'/api/customers/{customer.id}/events', headers=headers, json={
            'type': 'redemption', 'points': -150, 'reward_id': dessert.id,
        })
        assert response.status_code == 201
        assert response.get_json()['balance']['total_points'] == 100

    def test_ineligible_redemption_event(self, client, headers, restaurant, customer):
        main = make_reward(restaurant, name='Free Main Course', points_required=300, min_tier='silver')
        response = client.post(f'/api/customers/{customer.id}/events', headers=headers, json={
            'type': 'redemption', 'points': -300, 'reward_id': main.id,
        })
        assert response.status_code == 422
        assert response.get_json()['error']['details']['reasons'] == ['insufficient_points']


class TestPurchases:

    def test_purchase_uses_restaurant_rate(self, client, headers, customer):
        response = client.post(f'/api/customers/{customer.id}/purchases', headers=headers, json={
            'amount_spent': '125.50',
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['points_earned'] == 12
        assert data['transaction']['amount_spent'] == 125.5
        assert data['balance']['total_points'] == 262

    def test_purchase_requires_amount(self, client, headers, customer):
        response = client.post(f'/api/customers/{customer.id}/purchases', headers=headers, json={})
        assert response.status_code == 400
        assert error_code(response) == 'MISSING_FIELD'

    def test_non_positive_amount(self, client, headers, customer):
        response = client.post(f'/api/customers/{customer.id}/purchases', headers=headers, json={
            'amount_spent': 0,
        })
        assert response.status_code == 400
        assert error_code(response) == 'INVALID_AMOUNT'


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json() == {'status': 'healthy', 'service': 'loyalty'}


def test_unknown_route(client):
    response = client.get('/api/nothing-here')
    assert response.status_code == 404
    assert error_code(response) == 'NOT_FOUND'
