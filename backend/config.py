import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///livequiz.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Socket credential issued to admins on login
    JWT_SECRET = os.environ.get('JWT_SECRET') or SECRET_KEY
    JWT_EXPIRATION_HOURS = int(os.environ.get('JWT_EXPIRATION_HOURS', '24'))
    # Live session timings (seconds)
    READY_GRACE_SEC = float(os.environ.get('READY_GRACE_SEC', '1.0'))
    ADVANCE_DELAY_SEC = float(os.environ.get('ADVANCE_DELAY_SEC', '3.0'))
    # Minimum participants before an admin may start
    MIN_PARTICIPANTS = int(os.environ.get('MIN_PARTICIPANTS', '2'))
    # Comma separated list of frontend origins
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173').split(',')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
