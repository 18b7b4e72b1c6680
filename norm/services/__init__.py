"""
nORM - Services
Business logic and external API integrations
"""
from norm.services.ai_service import AIService, get_ai_service
from norm.services.email_service import EmailService, get_email_service
from norm.services.news_service import NewsService, get_news_service
from norm.services.serp_service import SERPService, get_serp_service
from norm.services.social_service import SocialService, get_social_service
from norm.services.wordpress_service import WordPressService

__all__ = [
    'AIService',
    'get_ai_service',
    'EmailService',
    'get_email_service',
    'NewsService',
    'get_news_service',
    'SERPService',
    'get_serp_service',
    'SocialService',
    'get_social_service',
    'WordPressService'
]
