import motor.motor_asyncio
import os
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "campusbookswap")

client = motor.motor_asyncio.AsyncIOMotorClient(MONGO_URL, tz_aware=True)
db = client[MONGO_DB_NAME]

def get_db():
    return db
