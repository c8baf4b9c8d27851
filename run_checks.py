from fastapi.testclient import TestClient

from civicfix.main import app

# Set USE_MOCK_DB=true to exercise the in-memory backend without Firebase
with TestClient(app) as client:
    print('ROOT:')
    print(client.get('/').json())

    print('\nHEALTH:')
    print(client.get('/health').json())

    print('\nDB HEALTH:')
    try:
        resp = client.get('/health/db')
        print(resp.status_code)
        try:
            print(resp.json())
        except Exception:
            print(resp.text)
    except Exception as e:
        print('DB call raised exception:', e)

    print('\nSYNC HEALTH:')
    print(client.get('/health/sync').json())
