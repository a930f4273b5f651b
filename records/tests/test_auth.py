import pytest
from django.urls import reverse
from rest_framework.test import APIClient
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken

from records.models import AuditEvent, Role, User

pytestmark = pytest.mark.django_db


def login(client, username, password):
    return client.post(reverse('auth-login'), {'username': username, 'password': password}, format='json')


def test_login_returns_jwt_user_and_cookie():
    client = APIClient()
    u = User.objects.create_user(username='doc', password='P@ssw0rd1', role=Role.DOCTOR, first_name='Greg')
    r = login(client, 'doc', 'P@ssw0rd1')
    assert r.status_code == 200
    assert r.data['success'] is True
    assert r.data['token'] and r.data['refresh']
    assert r.data['user'] == {'id': u.id, 'username': 'doc', 'firstName': 'Greg', 'lastName': '', 'role': 'Doctor'}
    assert r.cookies['token'].value == r.data['token']
    assert r.cookies['token']['httponly']
    assert AuditEvent.objects.filter(action='login', user=u, detail__result='ok').exists()


def test_no_role_bypass_in_login():
    client = APIClient()
    u = User.objects.create_user(username='u1', password='P@ssw0rd1', role=Role.PATIENT)
    r = client.post(reverse('auth-login'), {'username': 'u1', 'password': 'P@ssw0rd1', 'role': 'Admin'}, format='json')
    assert r.status_code == 200
    assert r.data['user']['role'] == 'Patient'
    u.refresh_from_db()
    assert u.role == 'Patient'


def test_bad_credentials_are_401_and_audited():
    client = APIClient()
    User.objects.create_user(username='u2', password='P@ssw0rd1')
    r = login(client, 'u2', 'wrong')
    assert r.status_code == 401
    assert r.data == {'success': False, 'message': 'Invalid username or password.'}
    assert AuditEvent.objects.filter(action='login', user=None, detail__username='u2').exists()


def test_missing_password_is_400():
    r = APIClient().post(reverse('auth-login'), {'username': 'u3'}, format='json')
    assert r.status_code == 400
    assert r.data['success'] is False
    assert 'password' in r.data['errors']


def test_bearer_token_authenticates():
    client = APIClient()
    User.objects.create_user(username='n1', password='P@ssw0rd1', role=Role.NURSE)
    token = login(client, 'n1', 'P@ssw0rd1').data['token']
    other = APIClient()
    other.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
    r = other.get(reverse('auth-me'))
    assert r.status_code == 200
    assert r.data['user']['role'] == 'Nurse'


def test_cookie_authenticates_without_header():
    client = APIClient()
    User.objects.create_user(username='p1', password='P@ssw0rd1')
    assert login(client, 'p1', 'P@ssw0rd1').status_code == 200
    # the test client keeps the cookie set by login
    r = client.get(reverse('auth-me'))
    assert r.status_code == 200
    assert r.data['user']['username'] == 'p1'


def test_invalid_token_is_401():
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION='Bearer not-a-jwt')
    r = client.get(reverse('auth-me'))
    assert r.status_code == 401
    assert r.data['success'] is False


def test_refresh_issues_new_access_token():
    client = APIClient()
    User.objects.create_user(username='r1', password='P@ssw0rd1')
    refresh = login(client, 'r1', 'P@ssw0rd1').data['refresh']
    r = APIClient().post(reverse('auth-refresh'), {'refresh': refresh}, format='json')
    assert r.status_code == 200
    assert r.data['success'] is True and r.data['token']
    r = APIClient().post(reverse('auth-refresh'), {'refresh': 'garbage'}, format='json')
    assert r.status_code == 401


def test_logout_blacklists_refresh_and_clears_cookie():
    client = APIClient()
    User.objects.create_user(username='l1', password='P@ssw0rd1')
    data = login(client, 'l1', 'P@ssw0rd1').data
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {data['token']}")
    r = client.post(reverse('auth-logout'), {'refresh': data['refresh']}, format='json')
    assert r.status_code == 200
    assert r.data['blacklisted'] == 1
    assert BlacklistedToken.objects.count() == 1
    assert r.cookies['token'].value == ''

    r = APIClient().post(reverse('auth-refresh'), {'refresh': data['refresh']}, format='json')
    assert r.status_code == 401


def test_logout_without_refresh_blacklists_all_outstanding():
    client = APIClient()
    User.objects.create_user(username='l2', password='P@ssw0rd1')
    login(client, 'l2', 'P@ssw0rd1')
    token = login(client, 'l2', 'P@ssw0rd1').data['token']
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
    r = client.post(reverse('auth-logout'), {}, format='json')
    assert r.status_code == 200
    assert r.data['blacklisted'] == 2


def test_healthz():
    r = APIClient().get('/healthz')
    assert r.status_code == 200
    assert r.json()['success'] is True


def test_stale_cookie_is_treated_as_anonymous():
    client = APIClient()
    User.objects.create_user(username='s1', password='P@ssw0rd1')
    client.cookies['token'] = 'expired.or.garbage'
    assert client.get(reverse('auth-me')).status_code == 401
    assert login(client, 's1', 'P@ssw0rd1').status_code == 200


def test_ensure_test_users_is_idempotent():
    from django.core.management import call_command
    call_command('ensure_test_users', '--password', 'S3cret!pass')
    call_command('ensure_test_users', '--password', 'S3cret!pass')
    assert User.objects.count() == len(Role)
    doctor = User.objects.get(username='doctor1')
    assert doctor.role == 'Doctor'
    assert doctor.check_password('S3cret!pass')
    assert User.objects.filter(username='insurance_staff1', role='Insurance Staff').exists()


def test_login_is_rate_limited():
    from django.conf import settings
    limit = int(settings.REST_FRAMEWORK['DEFAULT_THROTTLE_RATES']['login'].split('/')[0])
    client = APIClient()
    User.objects.create_user(username='t1', password='P@ssw0rd1')
    codes = [login(client, 't1', 'wrong').status_code for _ in range(limit)]
    assert codes == [401] * limit
    r = login(client, 't1', 'wrong')
    assert r.status_code == 429
    assert r.data['success'] is False
    assert r.has_header('Retry-After')
