"""
Database module for the attendance tracker
SQLite storage for class schedules, students and attendance records
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime

logger = logging.getLogger(__name__)

# Scalar attendance columns an upsert may touch (API field -> column)
ATTENDANCE_FIELDS = {
    'rollNumber': 'roll_number',
    'studentName': 'student_name',
    'className': 'class_name',
    'status': 'status',
    'presenceDuration': 'presence_duration',
    'requiredDuration': 'required_duration',
    'classDuration': 'class_duration',
    'detectionLog': 'detection_log',
    'engagementScore': 'engagement_score',
    'engagementData': 'engagement_data',
}
JSON_COLUMNS = {'detection_log', 'engagement_data'}
CLASS_COLUMNS = ('class_name', 'start_time', 'end_time', 'day_of_week', 'duration', 'is_active')


class DatabaseManager:
    def __init__(self, db_path="attendance_system.db"):
        self.db_path = db_path
        self.init_database()

    @contextmanager
    def get_connection(self):
        """Open a connection that commits on success and always closes"""
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        conn.execute('PRAGMA foreign_keys = ON')
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_database(self):
        """Create tables and indexes"""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS classes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    class_name VARCHAR(100) NOT NULL,
                    start_time VARCHAR(5) NOT NULL,
                    end_time VARCHAR(5) NOT NULL,
                    day_of_week VARCHAR(10) NOT NULL DEFAULT 'Daily',
                    duration INTEGER NOT NULL,
                    is_active BOOLEAN DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    CHECK (duration > 0)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS students (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name VARCHAR(100) NOT NULL,
                    roll_number VARCHAR(30) UNIQUE NOT NULL,
                    class_name VARCHAR(100) NOT NULL,
                    reference_image TEXT NOT NULL,
                    face_descriptor BLOB,
                    registered_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            # One record per (student, class, day); the constraint is what makes upserts race-free
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS attendance (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    student_id INTEGER NOT NULL,
                    class_id INTEGER NOT NULL,
                    attendance_date DATE NOT NULL,
                    roll_number VARCHAR(30) NOT NULL,
                    student_name VARCHAR(100) NOT NULL,
                    class_name VARCHAR(100) NOT NULL,
                    status VARCHAR(10) NOT NULL DEFAULT 'Absent',
                    presence_duration INTEGER NOT NULL DEFAULT 0,
                    required_duration INTEGER NOT NULL,
                    class_duration INTEGER NOT NULL,
                    detection_log TEXT NOT NULL DEFAULT '[]',
                    engagement_score INTEGER NOT NULL DEFAULT 0,
                    engagement_data TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (student_id, class_id, attendance_date),
                    FOREIGN KEY (student_id) REFERENCES students(id) ON DELETE CASCADE
                )
            ''')

            cursor.execute('CREATE INDEX IF NOT EXISTS idx_students_class ON students(class_name)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_classes_name ON classes(class_name, start_time)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_attendance_date ON attendance(attendance_date)')
            cursor.execute(
                'CREATE INDEX IF NOT EXISTS idx_attendance_class_date ON attendance(class_name, attendance_date)'
            )

        logger.info("Database ready at %s", self.db_path)

    # ------------------------------------------------------------------
    # Class schedules
    # ------------------------------------------------------------------
    def add_class(self, class_name, start_time, end_time, day_of_week, duration):
        with self.get_connection() as conn:
            cursor = conn.execute('''
                INSERT INTO classes (class_name, start_time, end_time, day_of_week, duration)
                VALUES (?, ?, ?, ?, ?)
            ''', (class_name, start_time, end_time, day_of_week, duration))
            return cursor.lastrowid

    def get_class_by_id(self, class_id):
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM classes WHERE id = ?', (class_id,)).fetchone()
            return dict(row) if row else None

    def get_active_classes(self):
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT * FROM classes WHERE is_active = 1
                ORDER BY class_name, start_time
            ''').fetchall()
            return [dict(r) for r in rows]

    def update_class(self, class_id, **kwargs):
        """Update the given schedule columns; returns False when the class does not exist"""
        updates = {k: v for k, v in kwargs.items() if k in CLASS_COLUMNS}
        if not updates:
            return self.get_class_by_id(class_id) is not None

        assignments = ', '.join(f"{column} = ?" for column in updates)
        params = list(updates.values()) + [datetime.now().isoformat(), class_id]
        with self.get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE classes SET {assignments}, updated_at = ? WHERE id = ?",
                params,
            )
            return cursor.rowcount > 0

    def delete_class(self, class_id):
        with self.get_connection() as conn:
            cursor = conn.execute('DELETE FROM classes WHERE id = ?', (class_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Students
    # ------------------------------------------------------------------
    def add_student(self, name, roll_number, class_name, reference_image):
        """Insert a student; returns the new id or None when the roll number is taken"""
        try:
            with self.get_connection() as conn:
                cursor = conn.execute('''
                    INSERT INTO students (name, roll_number, class_name, reference_image)
                    VALUES (?, ?, ?, ?)
                ''', (name, roll_number, class_name, reference_image))
                return cursor.lastrowid
        except sqlite3.IntegrityError:
            logger.info("Roll number %s already registered", roll_number)
            return None

    def get_student_by_id(self, student_id):
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM students WHERE id = ?', (student_id,)).fetchone()
            return dict(row) if row else None

    def get_student_by_roll(self, roll_number):
        with self.get_connection() as conn:
            row = conn.execute(
                'SELECT * FROM students WHERE roll_number = ?', (roll_number,)
            ).fetchone()
            return dict(row) if row else None

    def get_all_students(self, class_name=None):
        query = 'SELECT * FROM students'
        params = []
        if class_name:
            query += ' WHERE class_name = ?'
            params.append(class_name)
        query += ' ORDER BY roll_number'
        with self.get_connection() as conn:
            return [dict(r) for r in conn.execute(query, params).fetchall()]

    def get_students_by_class_name(self, class_name):
        return self.get_all_students(class_name=class_name)

    def set_face_descriptor(self, roll_number, descriptor_blob):
        with self.get_connection() as conn:
            cursor = conn.execute('''
                UPDATE students SET face_descriptor = ?, updated_at = ?
                WHERE roll_number = ?
            ''', (descriptor_blob, datetime.now().isoformat(), roll_number))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Attendance records
    # ------------------------------------------------------------------
    @staticmethod
    def _attendance_columns(fields):
        columns = {}
        for key, value in fields.items():
            column = ATTENDANCE_FIELDS.get(key)
            if column is None:
                continue
            if column in JSON_COLUMNS and value is not None:
                value = json.dumps(value)
            columns[column] = value
        return columns

    def upsert_attendance(self, student_id, class_id, day, fields, defaults=None):
        """
        Create or merge the record for (student, class, day).

        An existing row only gets the supplied ``fields``; ``defaults`` fill the
        row when it is created. Both statements share one transaction and the
        unique key settles a concurrent insert. The detection log is replaced
        wholesale by whatever the caller passes.
        """
        columns = self._attendance_columns(fields)
        insert_values = self._attendance_columns(defaults or {})
        insert_values.update(columns)
        now = datetime.now().isoformat()
        key = (student_id, class_id, day)

        with self.get_connection() as conn:
            assignments = ', '.join(f"{column} = ?" for column in list(columns) + ['updated_at'])
            cursor = conn.execute(
                f"UPDATE attendance SET {assignments} "
                "WHERE student_id = ? AND class_id = ? AND attendance_date = ?",
                list(columns.values()) + [now] + list(key),
            )
            if cursor.rowcount == 0:
                insert_columns = ['student_id', 'class_id', 'attendance_date'] + list(insert_values) + ['updated_at']
                placeholders = ', '.join('?' for _ in insert_columns)
                updates = ', '.join(f"{column} = excluded.{column}" for column in list(columns) + ['updated_at'])
                conn.execute(f'''
                    INSERT INTO attendance ({', '.join(insert_columns)})
                    VALUES ({placeholders})
                    ON CONFLICT(student_id, class_id, attendance_date) DO UPDATE SET {updates}
                ''', list(key) + list(insert_values.values()) + [now])
            row = conn.execute('''
                SELECT * FROM attendance
                WHERE student_id = ? AND class_id = ? AND attendance_date = ?
            ''', key).fetchone()
            return self._decode_attendance(row)

    def insert_attendance_if_missing(self, student_id, class_id, day, fields):
        """Insert a default record; an existing record for the key is left untouched"""
        columns = self._attendance_columns(fields)
        insert_columns = ['student_id', 'class_id', 'attendance_date'] + list(columns)
        values = [student_id, class_id, day] + list(columns.values())
        placeholders = ', '.join('?' for _ in insert_columns)
        with self.get_connection() as conn:
            cursor = conn.execute(f'''
                INSERT INTO attendance ({', '.join(insert_columns)})
                VALUES ({placeholders})
                ON CONFLICT(student_id, class_id, attendance_date) DO NOTHING
            ''', values)
            return cursor.rowcount > 0

    def get_attendance(self, student_id, class_id, day):
        with self.get_connection() as conn:
            row = conn.execute('''
                SELECT * FROM attendance
                WHERE student_id = ? AND class_id = ? AND attendance_date = ?
            ''', (student_id, class_id, day)).fetchone()
            return self._decode_attendance(row)

    @staticmethod
    def _attendance_filters(student_id=None, class_id=None, class_name=None,
                            date=None, start_date=None, end_date=None, status=None):
        clauses, params = [], []
        if student_id is not None:
            clauses.append('student_id = ?')
            params.append(student_id)
        if class_id is not None:
            clauses.append('class_id = ?')
            params.append(class_id)
        if class_name:
            clauses.append('class_name = ?')
            params.append(class_name)
        if date:
            clauses.append('attendance_date = ?')
            params.append(date)
        else:
            if start_date:
                clauses.append('attendance_date >= ?')
                params.append(start_date)
            if end_date:
                clauses.append('attendance_date <= ?')
                params.append(end_date)
        if status:
            clauses.append('status = ?')
            params.append(status)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ''
        return where, params

    def query_attendance(self, order_by='attendance_date DESC, updated_at DESC', limit=None, **filters):
        where, params = self._attendance_filters(**filters)
        query = f"SELECT * FROM attendance{where} ORDER BY {order_by}"
        if limit:
            query += ' LIMIT ?'
            params.append(int(limit))
        with self.get_connection() as conn:
            return [self._decode_attendance(r) for r in conn.execute(query, params).fetchall()]

    def count_attendance(self, **filters):
        where, params = self._attendance_filters(**filters)
        with self.get_connection() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM attendance{where}", params).fetchone()[0]

    @staticmethod
    def _decode_attendance(row):
        if row is None:
            return None
        record = dict(row)
        for column in JSON_COLUMNS:
            raw = record.get(column)
            if isinstance(raw, str):
                try:
                    record[column] = json.loads(raw)
                except ValueError:
                    logger.warning("Corrupt %s on attendance %s", column, record.get('id'))
                    record[column] = None
        if record.get('detection_log') is None:
            record['detection_log'] = []
        return record
