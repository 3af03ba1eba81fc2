def test_get_profile(client, faculty):
    user, headers = faculty
    response = client.get('/profile', headers=headers)
    assert response.status_code == 200
    body = response.get_json()
    assert body["id"] == user["_id"]
    assert body["designation"] == "Assistant Professor"


def test_update_profile_ignores_protected_fields(client, faculty):
    user, headers = faculty
    response = client.put('/profile', headers=headers, json={
        "specialization": "Machine Learning",
        "phone": "9876543210",
        "role": "admin",
        "email": "hijack@college.edu",
    })
    assert response.status_code == 200
    body = response.get_json()["user"]
    assert body["specialization"] == "Machine Learning"
    assert body["role"] == "faculty"
    assert body["email"] == user["email"]


def test_update_profile_validation(client, faculty):
    _, headers = faculty
    assert client.put('/profile', headers=headers, json={"role": "admin"}).status_code == 400
    assert client.put('/profile', headers=headers, json={"designation": "Dean"}).status_code == 400
    assert client.put('/profile', headers=headers, json={"name": "  "}).status_code == 400


def test_profile_requires_login(client):
    assert client.get('/profile').status_code == 401
