import mongomock
import pytest
from pymongo.errors import PyMongoError

import members
from database import now
from schemas import MembersRecord, Registration, UsersRecord
from conftest import make_account


def add_registration(db, **fields):
    doc = {'name': 'Ada Lovelace', 'email': 'ada@uni.edu', 'studentId': 'S100', 'course': 'Math',
           'year': '1', 'status': 'pending', 'createdAt': now()}
    doc.update(fields)
    return str(db['members'].insert_one(doc).inserted_id)


class TestListMembers:
    def test_merges_both_collections_with_source_tags(self, db):
        add_registration(db)
        make_account(db)

        result = members.list_members(db)

        assert {m.source for m in result} == {'members', 'users'}
        assert isinstance(result[0], MembersRecord)
        assert isinstance(result[1], UsersRecord)

    def test_applies_defaults(self, db):
        db['users'].insert_one({'email': 'bare@uni.edu'})

        (m,) = members.list_members(db)

        assert m.name == 'N/A'
        assert m.student_id == 'N/A'
        assert m.status == 'active'
        assert m.role == 'member'

    def test_users_prefer_full_name(self, db):
        db['users'].insert_one({'fullName': 'Grace Hopper', 'name': 'grace'})

        (m,) = members.list_members(db)

        assert m.name == 'Grace Hopper'

    def test_key_is_unique_across_collections(self, db):
        db['members'].insert_one({'_id': 'same', 'name': 'A'})
        db['users'].insert_one({'_id': 'same', 'name': 'B'})

        result = members.list_members(db)

        assert [m.id for m in result] == ['same', 'same']
        assert {m.key for m in result} == {'members:same', 'users:same'}


class TestWrites:
    def test_approve_then_list_shows_active(self, db):
        add_registration(db)
        user = make_account(db, status='pending')

        for m in members.list_members(db):
            assert members.approve(db, m.id, m.source) == {'success': True}

        assert all(m.status == 'active' for m in members.list_members(db))
        assert db['users'].find_one({'_id': user['_id']})['status'] == 'active'

    def test_source_defaults_to_members(self, db):
        member_id = add_registration(db)

        members.approve(db, member_id)

        (m,) = members.list_members(db)
        assert m.status == 'active'

    def test_reject_deletes_document(self, db):
        member_id = add_registration(db)

        members.reject(db, member_id, 'members')

        assert db['members'].count_documents({}) == 0

    def test_update_role(self, db):
        user = make_account(db)

        members.update_role(db, str(user['_id']), 'admin', 'users')

        assert db['users'].find_one({'_id': user['_id']})['role'] == 'admin'

    def test_update_users_record_also_sets_full_name(self, db):
        user = make_account(db)

        members.update_member(db, str(user['_id']), {'name': 'New Name', 'course': 'Physics', 'email': 'x@y.z'}, 'users')

        doc = db['users'].find_one({'_id': user['_id']})
        assert doc['fullName'] == 'New Name'
        assert doc['course'] == 'Physics'
        assert doc['email'] == user['email']
        assert 'updatedAt' in doc

    def test_write_failure_is_reported(self, db, monkeypatch):
        def fail(self, *args, **kwargs):
            raise PyMongoError('backend down')

        monkeypatch.setattr(mongomock.collection.Collection, 'update_one', fail)

        result = members.approve(db, 'abc', 'members')

        assert result == {'success': False, 'error': 'backend down'}

    def test_register_creates_pending_member(self, db):
        result = members.register(db, Registration(name='Alan', email='alan@uni.edu', student_id='S7'))

        doc = db['members'].find_one()
        assert result['success'] is True
        assert doc['status'] == 'pending'
        assert doc['studentId'] == 'S7'


class TestFilteringAndStats:
    @pytest.fixture
    def everyone(self):
        return [
            MembersRecord(id='1', name='Ada', email='ada@uni.edu', student_id='S1', status='pending'),
            UsersRecord(id='2', name='Grace', email='grace@uni.edu', student_id='S2', status='active'),
            UsersRecord(id='3', name='Root', email='root@uni.edu', student_id='S3', status='active', role='admin'),
        ]

    def test_filter_excludes_admins(self, everyone):
        assert [m.id for m in members.filter_members(everyone)] == ['1', '2']

    @pytest.mark.parametrize('term,expected', [
        ('ADA', ['1']),
        ('grace@', ['2']),
        ('s2', ['2']),
        ('root', []),
        ('nobody', []),
    ])
    def test_search(self, everyone, term, expected):
        assert [m.id for m in members.filter_members(everyone, term)] == expected

    def test_stats_exclude_admins(self, everyone):
        assert members.member_stats(everyone) == {'total': 2, 'pending': 1, 'active': 1}


class TestMemberEndpoints:
    def test_requires_admin(self, client, auth_headers):
        response = client.get('/admin/members', headers=auth_headers)
        assert response.status_code == 403

    def test_requires_auth(self, client):
        response = client.get('/admin/members')
        assert response.status_code == 401

    def test_list_and_approve(self, client, db, admin_auth_headers):
        member_id = add_registration(db)

        listing = client.get('/admin/members', headers=admin_auth_headers).json()
        assert listing['stats'] == {'total': 1, 'pending': 1, 'active': 0}
        assert listing['members'][0]['key'] == f'members:{member_id}'

        response = client.post(f'/admin/members/{member_id}/approve', params={'source': 'members'},
                               headers=admin_auth_headers)
        assert response.status_code == 200

        listing = client.get('/admin/members', headers=admin_auth_headers).json()
        assert listing['members'][0]['status'] == 'active'

    def test_search_param(self, client, db, admin_auth_headers):
        add_registration(db, name='Ada')
        add_registration(db, name='Alan', email='alan@uni.edu', studentId='S200')

        listing = client.get('/admin/members', params={'search': 'alan'}, headers=admin_auth_headers).json()

        assert [m['name'] for m in listing['members']] == ['Alan']
        assert listing['stats']['total'] == 2

    def test_edit_role_and_delete(self, client, db, admin_auth_headers):
        user = make_account(db)
        uid = str(user['_id'])

        r = client.put(f'/admin/members/{uid}', params={'source': 'users'},
                       json={'name': 'Edited', 'status': 'inactive'}, headers=admin_auth_headers)
        assert r.status_code == 200
        r = client.put(f'/admin/members/{uid}/role', params={'source': 'users'},
                       json={'role': 'admin'}, headers=admin_auth_headers)
        assert r.status_code == 200

        doc = db['users'].find_one({'_id': user['_id']})
        assert (doc['fullName'], doc['status'], doc['role']) == ('Edited', 'inactive', 'admin')

        r = client.delete(f'/admin/members/{uid}', params={'source': 'users'}, headers=admin_auth_headers)
        assert r.status_code == 200
        assert db['users'].find_one({'_id': user['_id']}) is None

    def test_invalid_role_rejected(self, client, db, admin_auth_headers):
        user = make_account(db)

        r = client.put(f"/admin/members/{user['_id']}/role", params={'source': 'users'},
                       json={'role': 'superuser'}, headers=admin_auth_headers)

        assert r.status_code == 422

    def test_public_registration(self, client, db):
        r = client.post('/members/register', json={'name': 'Alan', 'email': 'alan@uni.edu', 'studentId': 'S9'})

        assert r.status_code == 200
        assert r.json()['status'] == 'pending'
        assert db['members'].count_documents({'status': 'pending'}) == 1
