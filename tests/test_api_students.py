import base64


def test_register_normalizes_roll_number(client, reference_image):
    response = client.post('/api/students/register', json={
        'name': ' Asha Rao ', 'rollNumber': ' cs101 ', 'className': 'Math101', 'referenceImage': reference_image,
    })
    assert response.status_code == 201
    student = response.get_json()['student']
    assert student['rollNumber'] == 'CS101'
    assert student['name'] == 'Asha Rao'
    assert student['hasDescriptor'] is False
    assert 'referenceImage' not in student


def test_register_requires_every_field(client):
    response = client.post('/api/students/register', json={'name': 'Asha', 'rollNumber': 'CS101'})
    assert response.status_code == 400
    assert 'referenceImage' in response.get_json()['error']


def test_duplicate_roll_number_is_a_validation_error(client, register_student, reference_image):
    register_student(roll='CS101')
    response = client.post('/api/students/register', json={
        'name': 'Someone Else', 'rollNumber': 'cs101', 'className': 'Math101', 'referenceImage': reference_image,
    })
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Student with this roll number already exists'


def test_register_rejects_non_image(client):
    payload = 'data:image/png;base64,' + base64.b64encode(b'not an image at all' * 10).decode('ascii')
    response = client.post('/api/students/register', json={
        'name': 'Asha', 'rollNumber': 'CS101', 'className': 'Math101', 'referenceImage': payload,
    })
    assert response.status_code == 400
    assert client.get('/api/students/CS101').status_code == 404


def test_register_rejects_bad_base64(client):
    response = client.post('/api/students/register', json={
        'name': 'Asha', 'rollNumber': 'CS101', 'className': 'Math101', 'referenceImage': 'data:image/png;base64,@@@',
    })
    assert response.status_code == 400


def test_list_and_lookup(client, register_student):
    register_student(name='Ben', roll='CS102')
    register_student(name='Asha', roll='CS101')
    students = client.get('/api/students').get_json()['students']
    assert [s['rollNumber'] for s in students] == ['CS101', 'CS102']
    assert all('faceDescriptor' not in s for s in students)

    assert client.get('/api/students/cs102').get_json()['student']['name'] == 'Ben'
    assert client.get('/api/students/CS999').status_code == 404


def test_descriptor_and_reference(client, register_student, reference_image):
    student = register_student(roll='CS101')
    response = client.post('/api/students/CS101/descriptor', json={'faceDescriptor': [0.1, -0.2, 0.3]})
    assert response.status_code == 200
    assert response.get_json()['studentId'] == student['id']

    reference = client.get('/api/students/cs101/reference').get_json()
    assert reference['referenceImage'] == reference_image
    assert reference['faceDescriptor'] == [0.1, -0.2, 0.3]
    assert client.get('/api/students/CS101').get_json()['student']['hasDescriptor'] is True


def test_reference_before_descriptor(client, register_student):
    register_student(roll='CS101')
    assert client.get('/api/students/CS101/reference').get_json()['faceDescriptor'] is None


def test_descriptor_validation(client, register_student):
    register_student(roll='CS101')
    assert client.post('/api/students/CS101/descriptor', json={}).status_code == 400
    assert client.post('/api/students/CS101/descriptor', json={'faceDescriptor': 'abc'}).status_code == 400
    assert client.post('/api/students/CS101/descriptor', json={'faceDescriptor': [1, 'x']}).status_code == 400
    assert client.post('/api/students/CS404/descriptor', json={'faceDescriptor': [0.1]}).status_code == 404
