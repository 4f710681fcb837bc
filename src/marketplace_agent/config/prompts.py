"""Prompt templates for tools and agents.

Templates use str.format placeholders. Tools that expect structured replies
ask for a single JSON object and call the gateway with
ResponseFormat.JSON_OBJECT.
"""

# =============================================================================
# LISTING TOOLS
# =============================================================================

VISION_SYSTEM_PROMPT = """You are a product photographer and e-commerce copywriter.
You look at product photos and describe the product for a marketplace listing."""

VISION_PROMPT = """Describe the product shown in the attached photos.
Language of the answer: {language}.
{hints}
Return a JSON object with the keys:
- "product_name": short marketplace title
- "description": draft description, 2-4 sentences
- "key_features": list of short feature strings
- "category": best guess of the marketplace category"""

MARKET_ANALYSIS_SYSTEM_PROMPT = """You are a marketplace pricing analyst.
You combine a product description with competitor research to recommend a price."""

MARKET_ANALYSIS_PROMPT = """Product: {product_name}
Description: {description}
Key features: {features}
Target currency: {currency}

Pages showing the same product (reverse image search):
{matches}

Competitor offers (scraped):
{offers}

Some research sources may be missing; use what is available.
Return a JSON object with the keys:
- "recommended_price": number
- "min_price": number
- "max_price": number
- "rationale": one or two sentences"""

REFINE_CONTENT_SYSTEM_PROMPT = """You are an e-commerce copy editor.
You polish product listings so they are accurate, persuasive and searchable."""

REFINE_CONTENT_PROMPT = """Polish this listing for a marketplace.
Language: {language}
Draft title: {title}
Draft description: {description}
Key features: {features}
Market analysis: {analysis}

Return a JSON object with the keys:
- "title": final title (max 120 characters)
- "description": final description
- "keywords": list of 5-10 search keywords"""

AUDIENCE_SYSTEM_PROMPT = """You are a marketing strategist who defines target audiences."""

AUDIENCE_PROMPT = """Define the target audience for this product.
Title: {title}
Description: {description}
Price: {price} {currency}

Return a JSON object with the keys:
- "segment": short name of the target segment
- "demographics": one sentence
- "interests": list of interests"""

CAPTION_SYSTEM_PROMPT = """You write short social media captions for online shops."""

CAPTION_PROMPT = """Write a short caption with hashtags for this product.
Language: {language}
Title: {title}
Description: {description}
Audience: {audience}

Answer with the caption text only, hashtags at the end."""

# =============================================================================
# PRODUCT DESCRIPTION AGENT
# =============================================================================

DESCRIPTION_SYSTEM_PROMPT = """You write product descriptions for an Instagram shop.
Descriptions are attractive, emotional and accurate."""

GENERATE_DESCRIPTION_PROMPT = """Create a creative product description.
Product name: {name}
Price: {price}
{old_price}Description: {description}
{properties}{preferences}{history}
Use this structure:
- Catchy headline with emoji
- Main characteristics with emoji
- Detailed benefits
- Delivery information
- Call to action
- Hashtags"""

REFINE_DESCRIPTION_PROMPT = """Improve the product description according to the feedback.
Current description:
{description}

User feedback:
{feedback}

Keep the structure of the description, change it according to the feedback."""

HASHTAGS_PROMPT = """Create relevant Instagram hashtags for this product description.
Description:
{description}

Hashtags must be relevant to the product, popular on Instagram, include local
and thematic hashtags. Answer with one hashtag per line."""

CALL_TO_ACTION_PROMPT = """Create an effective call to action for this product description.
Description:
{description}

The call to action must be short and clear, motivate a purchase, include emoji
and point out what makes the offer unique."""

# =============================================================================
# CHAT AGENT
# =============================================================================

CHAT_SYSTEM_PROMPT = """You are the assistant of an online marketplace seller.
You help with product listings, market research, pricing and customer audiences.
Use the conversation history for context. Answer concisely."""
