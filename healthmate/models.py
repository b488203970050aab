# healthmate/models.py
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship

from .database import Base
from .utils import utcnow

REPORT_TYPES = ("CBC", "X-Ray", "Ultrasound", "Blood Test", "Other")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone_number = Column(String(50), nullable=True)
    password_hash = Column(String(255), nullable=False)
    profile_img = Column(String(255), nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    reports = relationship("Report", back_populates="user", cascade="all, delete-orphan")
    vitals = relationship("Vital", back_populates="user", cascade="all, delete-orphan")
    chat = relationship("Chat", back_populates="user", uselist=False, cascade="all, delete-orphan")


class PasswordResetOTP(Base):
    __tablename__ = "password_reset_otps"

    id = Column(Integer, primary_key=True, index=True)
    # one live code per address; issuing a new code overwrites this row
    email = Column(String(255), unique=True, nullable=False, index=True)
    otp = Column(String(4), nullable=False)
    verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    report_type = Column(String(50), nullable=False)
    date = Column(DateTime, nullable=False, index=True)
    file_url = Column(String(255), nullable=True)
    manual_data = Column(JSON, nullable=True)
    ai_summary = Column(Text, nullable=True)
    abnormalities = Column(JSON, nullable=False, default=list)
    doctor_questions = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="reports")


class Vital(Base):
    __tablename__ = "vitals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(DateTime, nullable=False, index=True)
    bp = Column(String(20), nullable=True)
    sugar = Column(Float, nullable=True)
    weight = Column(Float, nullable=True)
    pulse = Column(Float, nullable=True)
    temperature = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="vitals")


class Chat(Base):
    __tablename__ = "chats"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    # [{"sender": "user" | "ai", "text": str, "timestamp": iso str}], oldest first
    messages = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="chat")
