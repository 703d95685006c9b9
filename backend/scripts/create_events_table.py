from settings import settings
from db import get_conn
from psycopg import sql

DDL = '''
CREATE TABLE IF NOT EXISTS events (
    id BIGSERIAL PRIMARY KEY,
    name TEXT NOT NULL CHECK (length(name) > 0),
    sport TEXT NOT NULL CHECK (sport IN (
        'Basketball', 'Football', 'Baseball', 'Tennis',
        'Golf', 'Cycling', 'Soccer', 'Volleyball'
    )),
    description TEXT NOT NULL DEFAULT '',
    datetime TIMESTAMP WITH TIME ZONE NOT NULL,
    max_players INTEGER NOT NULL DEFAULT 4 CHECK (max_players >= 1),
    latitude DOUBLE PRECISION NOT NULL,
    longitude DOUBLE PRECISION NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_events_datetime ON events (datetime);
'''

# Any row change publishes the operation name; listeners ignore the payload
# and refetch.
NOTIFY_DDL = '''
CREATE OR REPLACE FUNCTION notify_events_changed() RETURNS trigger AS $$
BEGIN
    PERFORM pg_notify({channel}, TG_OP);
    RETURN NULL;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS events_changed ON events;
CREATE TRIGGER events_changed
    AFTER INSERT OR UPDATE OR DELETE ON events
    FOR EACH ROW EXECUTE FUNCTION notify_events_changed();
'''

print('Connecting to', settings.db_url)
with get_conn() as conn:
    with conn.cursor() as cur:
        cur.execute(DDL)
        cur.execute(sql.SQL(NOTIFY_DDL).format(channel=sql.Literal(settings.events_channel)))
    conn.commit()
print('DDL applied; notifying on channel', settings.events_channel)
