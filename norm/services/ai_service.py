"""
nORM - AI Service
OpenAI chat completions for sentiment analysis and counter-content generation
"""
import json
import re
import time
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional

import requests
from flask import current_app

from norm.errors import ExternalAPIError
from norm.models.db_models import Sentiment

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = 'https://api.openai.com/v1/chat/completions'

NEUTRAL_SENTIMENT = {
    'sentiment': Sentiment.NEUTRAL,
    'score': 0.0,
    'confidence': 0.0,
    'rationale': 'Error analyzing sentiment'
}

CONTENT_ANGLES = [
    'success stories and case studies',
    'customer testimonials and real experiences',
    'company investments and improvements',
    'comprehensive guides and why choose',
    'awards and recognition',
]

COUNTER_ANGLES = [
    'how the company solves problems: success cases',
    'real testimonials from satisfied customers',
    'company investments and improvements',
    'complete guide: why choose the company',
    'recognition and awards received',
]

CONTENT_SYSTEM_PROMPT = (
    'Você é um redator SEO especializado em gestão de reputação online. '
    'Sempre retorne JSON válido, sem formatação markdown.'
)

STREAM_SYSTEM_PROMPT = (
    'Você é um expert em SEO e criação de conteúdo em português brasileiro. '
    'Crie conteúdo original, otimizado para SEO, que seja informativo e engajador.'
)

STREAM_WORD_COUNTS = {
    'short': '400-600',
    'medium': '800-1200',
    'long': '1500-2000',
}

REPUTATION_TRENDS = ('improving', 'stable', 'declining')
REPUTATION_PROMPT_MENTIONS = 20


def call_with_retry(fn: Callable[[], Any], max_retries: int = 3, base_delay: float = 1.0) -> Any:
    """
    Call fn, retrying transient API failures with exponential backoff.

    Waits base_delay, 2*base_delay, 4*base_delay... between attempts.
    Errors that are not retryable (auth, bad request) are raised immediately.
    """
    last_error = None
    for attempt in range(max_retries):
        try:
            return fn()
        except ExternalAPIError as e:
            if not e.retryable:
                raise
            last_error = e
        except requests.exceptions.RequestException as e:
            last_error = ExternalAPIError('HTTP', str(e))

        if attempt < max_retries - 1:
            wait_time = base_delay * (2 ** attempt)
            logger.warning(f"API call failed, retrying in {wait_time}s ({attempt + 1}/{max_retries}): {last_error}")
            time.sleep(wait_time)

    raise last_error


def _strip_code_fences(content: str) -> str:
    content = content.strip()
    if '```' in content:
        content = content.split('```')[1]
        if content.startswith('json'):
            content = content[4:]
        content = content.strip()
    if not content.startswith('{'):
        start = content.find('{')
        end = content.rfind('}')
        if start != -1 and end != -1:
            content = content[start:end + 1]
    return content


def _clamp(value, low, high):
    return max(low, min(high, value))


def calculate_seo_score(content: str, title: str, meta_description: str, target_keywords: List[str]) -> int:
    """Heuristic 0-100 score from title/meta length, keyword density, length and headings"""
    score = 0

    title_length = len(title or '')
    if 60 <= title_length <= 70:
        score += 20
    elif 50 <= title_length <= 80:
        score += 15
    else:
        score += 10

    meta_length = len(meta_description or '')
    if 150 <= meta_length <= 160:
        score += 20
    elif 120 <= meta_length <= 170:
        score += 15
    else:
        score += 10

    content_lower = (content or '').lower()
    total_words = max(len(content_lower.split()), 1)

    for keyword in target_keywords or []:
        keyword_count = len(re.findall(re.escape(keyword.lower()), content_lower))
        density = keyword_count / total_words * 100
        if 1 <= density <= 2:
            score += 20
        elif 0.5 <= density <= 3:
            score += 15
        else:
            score += 10

    if 800 <= total_words <= 1500:
        score += 20
    elif 600 <= total_words <= 2000:
        score += 15
    else:
        score += 10

    has_h2 = re.search(r'<h2[^>]*>', content or '', re.IGNORECASE) is not None
    has_h3 = re.search(r'<h3[^>]*>', content or '', re.IGNORECASE) is not None
    if has_h2 and has_h3:
        score += 20
    elif has_h2 or has_h3:
        score += 15
    else:
        score += 10

    return min(100, score)


class AIService:
    """OpenAI-backed sentiment and content generation"""

    @property
    def openai_key(self):
        return current_app.config.get('OPENAI_API_KEY', '')

    @property
    def content_model(self):
        return current_app.config.get('CONTENT_AI_MODEL', 'gpt-4o')

    @property
    def fallback_model(self):
        return current_app.config.get('FALLBACK_AI_MODEL', 'gpt-4o-mini')

    @property
    def sentiment_model(self):
        return current_app.config.get('SENTIMENT_AI_MODEL', 'gpt-4o-mini')

    @property
    def max_retries(self):
        return current_app.config.get('AI_MAX_RETRIES', 3)

    def _headers(self) -> Dict[str, str]:
        if not self.openai_key:
            raise ExternalAPIError('OpenAI', 'API key not configured', upstream_status=401)
        return {
            'Authorization': f'Bearer {self.openai_key}',
            'Content-Type': 'application/json'
        }

    def _call_openai(
        self,
        prompt: str,
        system_prompt: str,
        model: str,
        max_tokens: int = 2000,
        temperature: float = 0.7,
        json_mode: bool = False
    ) -> str:
        """Single chat completion call. Raises ExternalAPIError on any failure."""
        payload = {
            'model': model,
            'messages': [
                {'role': 'system', 'content': system_prompt},
                {'role': 'user', 'content': prompt}
            ],
            'max_tokens': max_tokens,
            'temperature': temperature
        }
        if json_mode:
            payload['response_format'] = {'type': 'json_object'}

        logger.info(f"OpenAI API call: model={model}, max_tokens={max_tokens}")

        try:
            response = requests.post(OPENAI_CHAT_URL, headers=self._headers(), json=payload, timeout=180)
        except requests.exceptions.Timeout:
            raise ExternalAPIError('OpenAI', 'Request timed out after 180 seconds')
        except requests.RequestException as e:
            raise ExternalAPIError('OpenAI', f'Request error: {e}')

        if response.status_code != 200:
            error_text = response.text[:500]
            logger.error(f"OpenAI API error response ({response.status_code}): {error_text}")
            raise ExternalAPIError('OpenAI', f'API error ({response.status_code}): {error_text}',
                                   upstream_status=response.status_code)

        data = response.json()
        choices = data.get('choices') or []
        if not choices:
            raise ExternalAPIError('OpenAI', 'API returned empty response')

        content = choices[0].get('message', {}).get('content', '') or ''
        if choices[0].get('finish_reason') == 'length':
            logger.warning("OpenAI response was truncated (finish_reason=length)")
        if not content:
            raise ExternalAPIError('OpenAI', 'API returned empty content')
        return content

    def complete(self, prompt: str, system_prompt: str, model: str = None, **kwargs) -> str:
        """Chat completion wrapped in the retry helper"""
        model = model or self.content_model
        return call_with_retry(
            lambda: self._call_openai(prompt, system_prompt, model, **kwargs),
            max_retries=self.max_retries
        )

    # ==========================================
    # Sentiment
    # ==========================================

    def analyze_sentiment(self, text: str) -> Dict[str, Any]:
        """
        Classify text as positive, neutral or negative.

        Returns {sentiment, score (-1..1), confidence (0..1), rationale}.
        Never raises: any failure yields a neutral result with zero confidence.
        """
        if not text or not text.strip():
            return dict(NEUTRAL_SENTIMENT, rationale='No text to analyze')

        prompt = f"""Analyze the sentiment of the following text in Portuguese (PT-BR).
Return a JSON object with:
- sentiment: "positive", "neutral", or "negative"
- score: number between -1.0 (very negative) and 1.0 (very positive)
- confidence: number between 0.0 and 1.0 (how confident you are)
- rationale: brief explanation in Portuguese

Text to analyze:
{text[:4000]}

Return only valid JSON, no markdown formatting."""

        try:
            content = self.complete(
                prompt,
                system_prompt='You are a sentiment analysis expert. Always return valid JSON.',
                model=self.sentiment_model,
                max_tokens=500,
                temperature=0.3,
                json_mode=True
            )
            result = json.loads(_strip_code_fences(content))

            sentiment = result.get('sentiment')
            if sentiment not in Sentiment.ALL:
                sentiment = Sentiment.NEUTRAL

            score = _clamp(float(result.get('score', 0)), -1.0, 1.0)
            confidence = _clamp(float(result.get('confidence', 0)), 0.0, 1.0)

            return {
                'sentiment': sentiment,
                'score': round(score, 2),
                'confidence': round(confidence, 2),
                'rationale': result.get('rationale') or 'No rationale provided'
            }
        except Exception as e:
            logger.error(f"Sentiment analysis failed: {e}")
            return dict(NEUTRAL_SENTIMENT)

    # ==========================================
    # Reputation analysis
    # ==========================================

    def build_reputation_prompt(self, client_name: str, analysis_input: Dict[str, Any]) -> str:
        mentions = analysis_input.get('mentions') or []
        positions = analysis_input.get('serp_positions') or []
        ranked = [p['position'] for p in positions if p.get('position') is not None]
        avg_position = round(sum(ranked) / len(ranked), 1) if ranked else None

        counts = {s: 0 for s in Sentiment.ALL}
        for mention in mentions:
            sentiment = mention.get('sentiment') or Sentiment.NEUTRAL
            counts[sentiment] = counts.get(sentiment, 0) + 1

        highlights = '\n'.join(
            f"- [{m.get('type')}/{m.get('sentiment')}] {(m.get('title') or '')[:120]}"
            for m in mentions[:REPUTATION_PROMPT_MENTIONS]
        ) or '- (sem menções no período)'

        keyword_lines = '\n'.join(
            f"- {p['keyword']}: posição {p['position'] if p.get('position') is not None else 'fora do top 100'}"
            f" (variação {p.get('change', 0):+d})"
            for p in positions
        ) or '- (nenhuma palavra-chave monitorada)'

        return f"""Analise a reputação online de "{client_name}" e compare com o período anterior.

Dados:
- Score atual: {analysis_input.get('current_score')}
- Score anterior: {analysis_input.get('previous_score')}
- Sub-scores (0-10): {json.dumps(analysis_input.get('breakdown') or {})}
- Posição média no Google: {avg_position if avg_position is not None else 'sem dados'}
- Menções: {len(mentions)} (positivas: {counts[Sentiment.POSITIVE]}, neutras: {counts[Sentiment.NEUTRAL]}, negativas: {counts[Sentiment.NEGATIVE]})

Palavras-chave:
{keyword_lines}

Menções em destaque:
{highlights}

Formato de resposta JSON:
{{"overall_assessment": "...", "trend": "improving|stable|declining",
 "key_insights": ["..."], "risk_factors": ["..."], "opportunities": ["..."],
 "breakdown": {{"serp": "...", "news": "...", "social": "..."}},
 "recommendations": ["..."], "next_steps": ["..."]}}

Escreva em português brasileiro. Retorne apenas JSON válido, sem markdown."""

    def analyze_reputation(self, client_name: str, analysis_input: Dict[str, Any]) -> Dict[str, Any]:
        """
        Ask the model for a qualitative assessment of the reputation window.

        score_change and score_change_percentage are always computed here,
        never taken from the model. Raises ExternalAPIError when the model
        fails or does not return a JSON object.
        """
        prompt = self.build_reputation_prompt(client_name, analysis_input)
        content = self.complete(
            prompt,
            system_prompt='Você é um analista de reputação online. Sempre retorne JSON válido.',
            model=self.sentiment_model or self.content_model,
            max_tokens=2000,
            temperature=0.3,
            json_mode=True
        )

        try:
            result = json.loads(_strip_code_fences(content))
        except json.JSONDecodeError as e:
            raise ExternalAPIError('OpenAI', f'Invalid reputation analysis JSON: {e}')
        if not isinstance(result, dict):
            raise ExternalAPIError('OpenAI', 'Reputation analysis is not a JSON object')

        current = float(analysis_input.get('current_score') or 0)
        previous = float(analysis_input.get('previous_score') or 0)
        change = current - previous

        for key in ('key_insights', 'risk_factors', 'opportunities', 'recommendations', 'next_steps'):
            if not isinstance(result.get(key), list):
                result[key] = []
        if result.get('trend') not in REPUTATION_TRENDS:
            result['trend'] = 'improving' if change > 2 else 'declining' if change < -2 else 'stable'

        result['score_change'] = round(change, 2)
        result['score_change_percentage'] = round(change / previous * 100, 2) if previous else 0.0
        logger.info(f"Reputation analysis for {client_name}: {previous} -> {current}")
        return result

    # ==========================================
    # Content generation
    # ==========================================

    def build_content_prompt(
        self,
        topic: str,
        client_name: str,
        target_keywords: List[str],
        article_count: int = 1,
        article_index: int = 0,
        trigger_title: Optional[str] = None,
        trigger_url: Optional[str] = None
    ) -> str:
        keywords = ', '.join(target_keywords or [])

        if trigger_title:
            angle = COUNTER_ANGLES[article_index % len(COUNTER_ANGLES)]
            return f"""Você é um redator especializado em gestão de reputação online.
Escreva um artigo POSITIVO em português brasileiro (PT-BR) para contrapor conteúdo negativo.

Contexto:
- Artigo negativo: "{trigger_title}" ({trigger_url or ''})
- Cliente: {client_name}
- Palavras-chave alvo: {keywords}
- Ângulo: {angle}
- Artigo {article_index + 1} de {article_count}

IMPORTANTE:
- NÃO mencione o artigo negativo diretamente
- NÃO seja defensivo ou agressivo
- Foque em aspectos positivos e soluções
- Apresente fatos e evidências

Requisitos:
1. Título positivo e otimizado (60-70 caracteres)
2. Conteúdo de 800-1500 palavras
3. Estrutura com H2 e H3
4. Densidade de palavras-chave: 1-2%
5. Meta descrição (150-160 caracteres)

Formato de resposta JSON:
{{"title": "...", "content": "HTML", "meta_description": "...", "target_keywords": ["..."], "word_count": 1200}}

Retorne apenas JSON válido, sem markdown."""

        angle = CONTENT_ANGLES[article_index % len(CONTENT_ANGLES)]
        return f"""Escreva um artigo em português brasileiro (PT-BR) sobre: "{topic}"

Contexto:
- Cliente: {client_name}
- Palavras-chave alvo: {keywords}
- Ângulo do artigo: {angle}
- Artigo {article_index + 1} de {article_count}

Requisitos:
1. Título atrativo e otimizado para SEO (60-70 caracteres)
2. Conteúdo de 800-1500 palavras
3. Estrutura com H2 e H3
4. Densidade de palavras-chave: 1-2%
5. Meta descrição (150-160 caracteres)
6. Tom positivo e profissional

Formato de resposta JSON:
{{"title": "...", "content": "HTML", "meta_description": "...", "target_keywords": ["..."], "word_count": 1200}}

Retorne apenas JSON válido, sem markdown."""

    def _generate_article(self, prompt: str) -> Dict[str, Any]:
        try:
            content = self.complete(prompt, CONTENT_SYSTEM_PROMPT, model=self.content_model,
                                    max_tokens=4000, json_mode=True)
        except ExternalAPIError as e:
            logger.warning(f"Primary model {self.content_model} failed: {e}, trying fallback {self.fallback_model}")
            content = self.complete(prompt, CONTENT_SYSTEM_PROMPT, model=self.fallback_model,
                                    max_tokens=4000, json_mode=True)
        return json.loads(_strip_code_fences(content))

    def generate_content(
        self,
        client_name: str,
        topic: str,
        target_keywords: List[str],
        article_count: int = 1,
        trigger_title: Optional[str] = None,
        trigger_url: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Generate article_count SEO articles. When trigger_title is given the
        articles are counter-content for that negative mention.

        A failed article is logged and skipped; the others are still returned.
        """
        articles = []
        logger.info(f"Starting content generation for {client_name}: topic='{topic}', count={article_count}")

        for i in range(article_count):
            prompt = self.build_content_prompt(
                topic, client_name, target_keywords,
                article_count=article_count, article_index=i,
                trigger_title=trigger_title, trigger_url=trigger_url
            )
            try:
                result = self._generate_article(prompt)
            except (ExternalAPIError, json.JSONDecodeError) as e:
                logger.error(f"Failed to generate article {i + 1}/{article_count}: {e}")
                continue

            body = result.get('content') or ''
            title = result.get('title') or topic
            meta_description = result.get('meta_description') or ''
            keywords = result.get('target_keywords') or list(target_keywords or [])
            text_only = re.sub(r'<[^>]+>', ' ', body)
            word_count = len(text_only.split())
            sentiment = self.analyze_sentiment(f"{title}\n{meta_description}\n{text_only}")

            articles.append({
                'title': title,
                'body': body,
                'meta_description': meta_description,
                'target_keywords': keywords,
                'word_count': word_count,
                'seo_score': calculate_seo_score(body, title, meta_description, keywords),
                'sentiment_score': sentiment['score'] if sentiment['confidence'] else None
            })
            logger.info(f"Generated article {i + 1}/{article_count}: '{title[:60]}' ({word_count} words)")

        return articles

    def build_stream_prompt(self, topic: str, keywords: List[str], tone: str = 'professional',
                            length: str = 'medium') -> str:
        """Markdown article prompt for the streaming endpoint"""
        target_words = STREAM_WORD_COUNTS.get(length, STREAM_WORD_COUNTS['medium'])
        return f"""Crie um artigo completo sobre: {topic}

Requisitos:
- Tamanho: {target_words} palavras
- Tom: {tone}
- Palavras-chave para incluir naturalmente: {', '.join(keywords or [])}
- Formato em Markdown
- Título H1
- Pelo menos 3 seções com H2
- Parágrafos bem estruturados
- Call-to-action no final

O artigo deve ser 100% em português brasileiro e otimizado para motores de busca."""

    def stream_content(self, prompt: str, model: str = None) -> Iterator[str]:
        """Yield text chunks from a streamed chat completion"""
        model = model or self.content_model

        def _open_stream():
            try:
                response = requests.post(
                    OPENAI_CHAT_URL,
                    headers=self._headers(),
                    json={
                        'model': model,
                        'messages': [
                            {'role': 'system', 'content': STREAM_SYSTEM_PROMPT},
                            {'role': 'user', 'content': prompt}
                        ],
                        'temperature': 0.7,
                        'stream': True
                    },
                    stream=True,
                    timeout=180
                )
            except requests.RequestException as e:
                raise ExternalAPIError('OpenAI', f'Request error: {e}')
            if response.status_code != 200:
                raise ExternalAPIError('OpenAI', f'API error ({response.status_code}): {response.text[:300]}',
                                       upstream_status=response.status_code)
            return response

        response = call_with_retry(_open_stream, max_retries=self.max_retries)

        with response:
            for line in response.iter_lines(decode_unicode=True):
                if not line or not line.startswith('data:'):
                    continue
                data = line[len('data:'):].strip()
                if data == '[DONE]':
                    break
                try:
                    chunk = json.loads(data)
                except json.JSONDecodeError:
                    continue
                choices = chunk.get('choices') or []
                if not choices:
                    continue
                delta = choices[0].get('delta', {}).get('content')
                if delta:
                    yield delta


# Singleton instance
_ai_service = None


def get_ai_service() -> AIService:
    """Get or create AI service instance"""
    global _ai_service
    if _ai_service is None:
        _ai_service = AIService()
    return _ai_service
