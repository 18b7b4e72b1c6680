"""
nORM - Data Models
SQLAlchemy ORM models for PostgreSQL
"""
from norm.models.db_models import (
    DBUser as User,
    DBClientUser as ClientUser,
    DBClient as Client,
    DBKeyword as Keyword,
    DBSERPResult as SERPResult,
    DBNewsMention as NewsMention,
    DBSocialAccount as SocialAccount,
    DBSocialPost as SocialPost,
    DBAlert as Alert,
    DBReputationScore as ReputationScore,
    DBGeneratedContent as GeneratedContent,
    DBWordPressSite as WordPressSite,
    ClientRole,
    Sentiment,
    AlertType,
    AlertSeverity,
    AlertStatus,
    ContentStatus,
    SocialPlatform
)

__all__ = [
    'User',
    'ClientUser',
    'Client',
    'Keyword',
    'SERPResult',
    'NewsMention',
    'SocialAccount',
    'SocialPost',
    'Alert',
    'ReputationScore',
    'GeneratedContent',
    'WordPressSite',
    'ClientRole',
    'Sentiment',
    'AlertType',
    'AlertSeverity',
    'AlertStatus',
    'ContentStatus',
    'SocialPlatform'
]
