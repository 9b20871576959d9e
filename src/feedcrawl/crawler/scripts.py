"""
JavaScript evaluated in the page by the extractors.

Each script returns plain JSON-serialisable data so the Python side can
classify candidates without holding element handles across scrolls.
"""

# Tweets in the list timeline. The first cell is the list header.
COLLECT_TWEETS_JS = r"""
() => {
  const timeline = document.querySelector('div[aria-label="Timeline: List"]')
    || document.querySelector('[data-testid="primaryColumn"]')
    || document;
  const text = (root, sel) => {
    const el = root.querySelector(sel);
    return el ? (el.innerText || '').trim() : '';
  };
  const out = [];
  for (const article of timeline.querySelectorAll('article[data-testid="tweet"]')) {
    if (article.querySelector('[data-testid="promotedIndicator"]')) continue;
    let statusHref = '';
    const time = article.querySelector('time[datetime]');
    if (time && time.closest('a')) statusHref = time.closest('a').getAttribute('href') || '';
    if (!statusHref) {
      const link = article.querySelector('a[href*="/status/"]');
      statusHref = link ? link.getAttribute('href') || '' : '';
    }
    const social = text(article, '[data-testid="socialContext"]').toLowerCase();
    const userLink = article.querySelector('[data-testid="User-Name"] a[href^="/"]');
    out.push({
      status_href: statusHref,
      text: text(article, '[data-testid="tweetText"]'),
      author: text(article, '[data-testid="User-Name"] span'),
      user_href: userLink ? userLink.getAttribute('href') || '' : '',
      datetime: time ? time.getAttribute('datetime') : null,
      social_context: social,
      is_reply: !!Array.from(article.querySelectorAll('div'))
        .find(d => /^replying to/i.test((d.innerText || '').trim())),
      reply_count: text(article, '[data-testid="reply"] span'),
      retweet_count: text(article, '[data-testid="retweet"] span'),
      like_count: text(article, '[data-testid="like"] span'),
      images: Array.from(article.querySelectorAll('img[src*="pbs.twimg.com/media"]')).map(i => i.src),
    });
  }
  return out;
}
"""

# Video tiles on a channel's videos tab, old and new layouts.
COLLECT_VIDEOS_JS = r"""
() => {
  const pick = (root, selectors) => {
    for (const sel of selectors) {
      const el = root.querySelector(sel);
      if (el) return el;
    }
    return null;
  };
  const text = (el) => el ? (el.innerText || el.textContent || '').trim() : '';
  const out = [];
  const tiles = document.querySelectorAll('ytd-rich-item-renderer, ytd-grid-video-renderer, ytd-video-renderer');
  for (const tile of tiles) {
    const link = pick(tile, ['a.yt-lockup-metadata-view-model__title', 'a#video-title-link', 'h3 a#video-title', 'a#thumbnail']);
    const title = pick(tile, ['h3.yt-lockup-metadata-view-model__heading-reset', '#video-title', 'a.yt-lockup-metadata-view-model__title']);
    const contentId = tile.querySelector('[class*="content-id-"]');
    const meta = Array.from(tile.querySelectorAll(
      '#metadata-line span, .yt-content-metadata-view-model__metadata-text'
    )).map(text).filter(Boolean);
    const thumb = pick(tile, ['yt-thumbnail-view-model img', 'ytd-thumbnail img', 'img#img']);
    out.push({
      href: link ? link.getAttribute('href') || '' : '',
      content_class: contentId ? contentId.getAttribute('class') || '' : '',
      title: text(title) || (title ? title.getAttribute('title') || '' : ''),
      duration: text(pick(tile, ['.yt-badge-shape__text', 'span.ytd-thumbnail-overlay-time-status-renderer'])),
      views: meta.length > 0 ? meta[0] : '',
      published: meta.length > 1 ? meta[meta.length - 1] : '',
      thumbnail: thumb ? thumb.getAttribute('src') || '' : '',
    });
  }
  return out;
}
"""

SCROLL_JS = "(factor) => window.scrollBy(0, Math.round(window.innerHeight * factor))"

SCROLL_OFFSET_JS = "() => Math.round(window.scrollY || document.documentElement.scrollTop || 0)"

