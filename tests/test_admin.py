from datetime import datetime

import pytest

import admin as admin_module
from errors import IdentityError
from models import db, Announcement, Contest, Participant, Profile, Question, Submission, User


class TestAccess:
    def test_missing_token(self, client):
        resp = client.get('/api/admin/participants')
        assert resp.status_code == 401

    def test_non_admin(self, client, make_user, auth_headers):
        resp = client.get('/api/admin/participants', headers=auth_headers(make_user()))
        assert resp.status_code == 403

    def test_admin(self, client, admin_headers):
        resp = client.get('/api/admin/participants', headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json() == {'participants': [], 'count': 0}


class TestRemoveParticipant:
    def test_removes_participant_profile_and_identity(self, client, make_user, make_participant, make_question, admin_headers):
        user = make_user()
        participant = make_participant(user)
        question = make_question()
        client.post('/submit', json={'participantId': participant.id, 'questionId': question.id, 'points': 20})
        participant_id, user_id = participant.id, user.id

        resp = client.post('/admin/remove-participant', json={'participantId': participant_id, 'userId': user_id},
                           headers=admin_headers)

        assert resp.status_code == 200
        assert resp.get_json() == {'success': True}
        db.session.expire_all()
        assert db.session.get(Participant, participant_id) is None
        assert Profile.query.filter_by(user_id=user_id).first() is None
        assert db.session.get(User, user_id) is None
        assert Submission.query.filter_by(participant_id=participant_id).count() == 0

    def test_identity_failure_is_a_warning(self, client, make_user, make_participant, admin_headers, monkeypatch):
        def failing_delete(user_id):
            raise IdentityError('Identity provider unavailable', 503)
        monkeypatch.setattr(admin_module, 'delete_user', failing_delete)
        user = make_user()
        participant = make_participant(user)
        participant_id, user_id = participant.id, user.id

        resp = client.post('/admin/remove-participant', json={'participantId': participant_id, 'userId': user_id},
                           headers=admin_headers)

        body = resp.get_json()
        assert resp.status_code == 200
        assert body['success'] is True
        assert body['warning'] == 'Identity provider unavailable'
        db.session.expire_all()
        assert db.session.get(Participant, participant_id) is None
        assert db.session.get(User, user_id) is not None

    def test_user_of_another_participant_is_rejected(self, client, make_user, make_participant, admin_headers):
        alice = make_user(full_name='Alice')
        bob = make_user(full_name='Bob')
        participant = make_participant(alice)
        participant_id, alice_id, bob_id = participant.id, alice.id, bob.id

        resp = client.post('/admin/remove-participant', json={'participantId': participant_id, 'userId': bob_id},
                           headers=admin_headers)

        assert resp.status_code == 400
        db.session.expire_all()
        assert db.session.get(Participant, participant_id) is not None
        assert db.session.get(User, alice_id) is not None
        assert db.session.get(User, bob_id) is not None
        assert Profile.query.filter_by(user_id=bob_id).first() is not None

    def test_requires_both_ids(self, client, admin_headers):
        resp = client.post('/admin/remove-participant', json={'participantId': 1}, headers=admin_headers)
        assert resp.status_code == 400

    def test_unknown_participant(self, client, admin_headers):
        resp = client.post('/admin/remove-participant', json={'participantId': 77, 'userId': 1}, headers=admin_headers)
        assert resp.status_code == 404


class TestParticipantActions:
    def test_update_password(self, client, make_user, admin_headers):
        user = make_user()

        resp = client.post('/admin/update-password', json={'userId': user.id, 'newPassword': 'brand-new-pw'},
                           headers=admin_headers)

        assert resp.status_code == 200
        assert resp.get_json()['user']['id'] == user.id

    def test_update_password_requires_fields(self, client, admin_headers):
        resp = client.post('/admin/update-password', json={'userId': 1}, headers=admin_headers)
        assert resp.status_code == 400

    def test_toggle_block(self, client, make_user, make_participant, admin_headers):
        participant = make_participant(make_user())

        first = client.post(f'/api/admin/participants/{participant.id}/toggle-block', headers=admin_headers)
        second = client.post(f'/api/admin/participants/{participant.id}/toggle-block', headers=admin_headers)

        assert first.get_json()['participant']['is_blocked'] is True
        assert second.get_json()['participant']['is_blocked'] is False

    def test_reset_score(self, client, make_user, make_participant, admin_headers, fresh):
        participant = make_participant(make_user(), score=50, time_taken_seconds=900, completed_at=datetime.utcnow())

        resp = client.post(f'/api/admin/participants/{participant.id}/reset-score', headers=admin_headers)

        assert resp.status_code == 200
        reset = fresh(Participant, participant.id)
        assert (reset.score, reset.time_taken_seconds, reset.completed_at) == (0, 0, None)

    def test_reset_score_keeps_questions_solved(self, client, make_user, make_participant, make_question, admin_headers):
        participant = make_participant(make_user())
        question = make_question()
        payload = {'participantId': participant.id, 'questionId': question.id, 'points': 20}
        client.post('/submit', json=payload)

        client.post(f'/api/admin/participants/{participant.id}/reset-score', headers=admin_headers)
        resp = client.post('/submit', json=payload)

        assert resp.get_json()['already_solved'] is True
        assert resp.get_json()['new_score'] == 0

    def test_list_includes_profile(self, client, make_user, make_participant, admin_headers):
        make_participant(make_user(full_name='Low'), score=5)
        make_participant(make_user(full_name='High'), score=40)

        rows = client.get('/api/admin/participants', headers=admin_headers).get_json()['participants']

        assert [row['full_name'] for row in rows] == ['High', 'Low']


class TestContests:
    def test_create_and_activate(self, client, admin_headers):
        created = client.post('/api/admin/contests', json={'name': 'Spring Marathon', 'duration_minutes': 45},
                              headers=admin_headers)
        assert created.status_code == 201
        contest = created.get_json()['contest']
        assert contest['status'] == 'scheduled'
        assert contest['started_at'] is None

        resp = client.post(f'/api/admin/contests/{contest["id"]}/status', json={'status': 'active'},
                           headers=admin_headers)

        assert resp.status_code == 200
        assert resp.get_json()['contest']['started_at'] is not None
        listed = client.get('/api/admin/contests', headers=admin_headers).get_json()['contests']
        assert [c['name'] for c in listed] == ['Spring Marathon']

    @pytest.mark.parametrize('payload', [{}, {'name': 'X', 'status': 'running'}, {'name': 'X', 'duration_minutes': 0}])
    def test_create_validation(self, client, admin_headers, payload):
        resp = client.post('/api/admin/contests', json=payload, headers=admin_headers)
        assert resp.status_code == 400

    def test_new_participants_join_active_contest(self, client, make_user, auth_headers, admin_headers):
        contest_id = client.post('/api/admin/contests', json={'name': 'Live', 'status': 'active'},
                                 headers=admin_headers).get_json()['contest']['id']
        user = make_user()

        client.post('/submit', json={'points': 1}, headers=auth_headers(user))

        assert Participant.query.filter_by(user_id=user.id).one().contest_id == contest_id

    def test_completed_contest_stops_submissions(self, client, make_user, make_participant, admin_headers):
        contest = Contest(name='Done', status='active')
        db.session.add(contest)
        db.session.commit()
        participant = make_participant(make_user(), contest_id=contest.id)

        client.post(f'/api/admin/contests/{contest.id}/status', json={'status': 'completed'}, headers=admin_headers)
        resp = client.post('/submit', json={'participantId': participant.id, 'points': 10})

        assert resp.status_code == 403

    def test_settings_default_and_upsert(self, client, admin_headers):
        contest_id = client.post('/api/admin/contests', json={'name': 'Cfg'},
                                 headers=admin_headers).get_json()['contest']['id']

        defaults = client.get(f'/api/admin/contests/{contest_id}/settings', headers=admin_headers).get_json()
        assert defaults['settings']['max_attempts_per_question'] == 999

        client.put(f'/api/admin/contests/{contest_id}/settings',
                   json={'anti_cheat_enabled': False, 'max_attempts_per_question': 3}, headers=admin_headers)
        saved = client.put(f'/api/admin/contests/{contest_id}/settings',
                           json={'track_tab_switches': False}, headers=admin_headers).get_json()['settings']

        assert saved == {
            'contest_id': contest_id,
            'auto_save_enabled': True,
            'anti_cheat_enabled': False,
            'track_tab_switches': False,
            'max_attempts_per_question': 3
        }

    def test_settings_validation(self, client, admin_headers):
        contest_id = client.post('/api/admin/contests', json={'name': 'Cfg'},
                                 headers=admin_headers).get_json()['contest']['id']
        resp = client.put(f'/api/admin/contests/{contest_id}/settings',
                          json={'max_attempts_per_question': 0}, headers=admin_headers)
        assert resp.status_code == 400

    def test_announcements(self, client, admin_headers):
        contest_id = client.post('/api/admin/contests', json={'name': 'News'},
                                 headers=admin_headers).get_json()['contest']['id']

        created = client.post('/api/admin/announcements', json={'contest_id': contest_id, 'message': '10 minutes left'},
                              headers=admin_headers)
        assert created.status_code == 201

        listed = client.get('/api/admin/announcements', headers=admin_headers).get_json()['announcements']
        assert listed[0]['contest_name'] == 'News'
        assert listed[0]['message'] == '10 minutes left'
        assert Announcement.query.count() == 1

    def test_announcement_needs_message(self, client, admin_headers):
        resp = client.post('/api/admin/announcements', json={'contest_id': 1, 'message': ' '}, headers=admin_headers)
        assert resp.status_code == 400


class TestQuestions:
    def test_create_with_json_text_test_cases(self, client, admin_headers):
        resp = client.post('/api/admin/questions', json={
            'title': 'Off by one',
            'language': 'c',
            'difficulty': 'medium',
            'points': 30,
            'faulty_code': 'for (i = 0; i <= n; i++)',
            'correct_code': 'for (i = 0; i < n; i++)',
            'test_cases': '[{"input": "3", "output": "0 1 2"}]'
        }, headers=admin_headers)

        assert resp.status_code == 201
        question = resp.get_json()['question']
        assert question['test_cases'] == [{'input': '3', 'output': '0 1 2'}]
        assert question['correct_code'] == 'for (i = 0; i < n; i++)'

    @pytest.mark.parametrize('payload', [
        {'language': 'python'},
        {'title': 'T', 'language': 'ruby'},
        {'title': 'T', 'language': 'python', 'difficulty': 'extreme'},
        {'title': 'T', 'language': 'python', 'points': -5},
        {'title': 'T', 'language': 'python', 'test_cases': '{not json'},
    ])
    def test_create_validation(self, client, admin_headers, payload):
        resp = client.post('/api/admin/questions', json=payload, headers=admin_headers)
        assert resp.status_code == 400

    def test_update_toggle_and_delete(self, client, make_user, make_participant, make_question, admin_headers):
        question = make_question(points=10)
        participant = make_participant(make_user())
        client.post('/submit', json={'participantId': participant.id, 'questionId': question.id, 'points': 10})

        updated = client.put(f'/api/admin/questions/{question.id}', json={'points': 25, 'hint': 'Check the colon'},
                             headers=admin_headers).get_json()['question']
        assert (updated['points'], updated['hint'], updated['title']) == (25, 'Check the colon', 'Fix the loop')

        toggled = client.post(f'/api/admin/questions/{question.id}/toggle', headers=admin_headers).get_json()
        assert toggled['question']['enabled'] is False

        resp = client.delete(f'/api/admin/questions/{question.id}', headers=admin_headers)
        assert resp.status_code == 200
        db.session.expire_all()
        assert db.session.get(Question, question.id) is None
        assert Submission.query.one().question_id is None

    def test_list_filters_by_language(self, client, make_question, admin_headers):
        make_question(title='Py', language='python')
        make_question(title='Java', language='java', enabled=False)

        resp = client.get('/api/admin/questions?language=java', headers=admin_headers).get_json()

        assert [q['title'] for q in resp['questions']] == ['Java']


class TestReports:
    def _seed(self, client, make_user, make_participant, make_question):
        fast = make_participant(make_user(full_name='Fast'), time_taken_seconds=0)
        slow = make_participant(make_user(full_name='Slow'), time_taken_seconds=0)
        idle = make_participant(make_user(full_name='Idle'))
        easy = make_question(title='Easy', points=10)
        hard = make_question(title='Hard', points=30)

        for participant in (fast, slow):
            for question in (easy, hard):
                client.post('/submit', json={'participantId': participant.id, 'questionId': question.id,
                                             'points': question.points})
        db.session.add(Submission(participant_id=idle.id, question_id=easy.id, status='incorrect'))
        db.session.query(Participant).filter_by(id=fast.id).update({Participant.time_taken_seconds: 120})
        db.session.query(Participant).filter_by(id=slow.id).update({Participant.time_taken_seconds: 600})
        db.session.commit()
        return fast, slow, idle, easy, hard

    def test_leaderboard_ranks_by_score_then_time(self, client, make_user, make_participant, make_question, admin_headers):
        self._seed(client, make_user, make_participant, make_question)

        board = client.get('/api/admin/leaderboard', headers=admin_headers).get_json()

        assert board['total_participants'] == 3
        assert [(e['rank'], e['full_name'], e['score']) for e in board['leaderboard']] == [
            (1, 'Fast', 40), (2, 'Slow', 40), (3, 'Idle', 0)
        ]
        assert board['leaderboard'][1]['time_taken_minutes'] == 10

    def test_dashboard(self, client, make_user, make_participant, make_question, admin_headers):
        self._seed(client, make_user, make_participant, make_question)

        stats = client.get('/api/admin/dashboard', headers=admin_headers).get_json()

        assert stats['total_participants'] == 3
        assert stats['total_questions'] == 2
        assert stats['total_submissions'] == 5
        assert stats['active_contests'] == 0
        assert stats['top_participants'][0]['full_name'] == 'Fast'

    def test_analytics(self, client, make_user, make_participant, make_question, admin_headers):
        _, _, _, easy, hard = self._seed(client, make_user, make_participant, make_question)

        stats = client.get('/api/admin/analytics', headers=admin_headers).get_json()

        assert stats['total_participants'] == 3
        assert stats['average_score'] == 27
        assert stats['average_time_minutes'] == 4
        easy_stats = next(s for s in stats['question_stats'] if s['question_id'] == easy.id)
        assert (easy_stats['total'], easy_stats['correct'], easy_stats['incorrect']) == (3, 2, 1)
        hard_stats = next(s for s in stats['question_stats'] if s['question_id'] == hard.id)
        assert (hard_stats['title'], hard_stats['total'], hard_stats['correct']) == ('Hard', 2, 2)

    def test_submissions_feed(self, client, make_user, make_participant, make_question, admin_headers):
        self._seed(client, make_user, make_participant, make_question)

        feed = client.get('/api/admin/submissions?limit=2', headers=admin_headers).get_json()

        assert feed['count'] == 2
        assert all('question_title' in s and 'participant_email' in s for s in feed['submissions'])
