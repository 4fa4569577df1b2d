#!/usr/bin/env python3
"""
Initialize database tables from models
"""
from database import engine, Base, DATABASE_PATH
from models import User, Group, GroupMember, Expense, ExpenseSplit  # noqa: F401 - registers tables

if __name__ == "__main__":
    print(f"Creating all database tables in {DATABASE_PATH}...")
    Base.metadata.create_all(bind=engine)
    print("✓ Database tables created successfully!")
