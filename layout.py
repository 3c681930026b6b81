# --------------------------------------------------------------------------------
# HTML 공통 레이아웃 (Header / Footer / 관리자 상단바)
# --------------------------------------------------------------------------------
from flask import render_template_string

HEADER_HTML = """
<!DOCTYPE html>
<html lang="ko">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0, maximum-scale=1.0, user-scalable=no">
    <title>{{ page_title or '상가톡 - 우리 동네 상점 플랫폼' }}</title>
    <script src="https://cdn.tailwindcss.com"></script>
    <link href="https://cdnjs.cloudflare.com/ajax/libs/font-awesome/6.0.0/css/all.min.css" rel="stylesheet">
    <link href="https://cdn.jsdelivr.net/gh/orioncactus/pretendard/dist/web/static/pretendard.css" rel="stylesheet">
    <style>
        body { font-family: 'Pretendard', sans-serif; }
        .prose h1 { font-size: 1.5rem; font-weight: 900; margin: 1rem 0; }
        .prose h2 { font-size: 1.25rem; font-weight: 800; margin: 0.75rem 0; }
        .prose p { margin: 0.5rem 0; line-height: 1.7; }
        .prose ul { list-style: disc; padding-left: 1.25rem; }
        .prose ol { list-style: decimal; padding-left: 1.25rem; }
        .prose img { border-radius: 1rem; max-width: 100%; }
    </style>
</head>
<body class="bg-gray-50 text-gray-800">
<nav class="bg-white border-b h-16 flex items-center justify-between px-4 md:px-8 sticky top-0 z-50 shadow-sm">
    <a href="/" class="text-xl font-black text-emerald-600 italic tracking-tighter">SanggaTalk</a>
    <form action="/search" class="hidden md:flex flex-1 max-w-md mx-6">
        <input name="q" value="{{ request.args.get('q', '') }}" placeholder="매장·상품 검색" class="w-full px-5 py-2 bg-gray-100 rounded-full text-sm font-bold outline-none focus:ring-2 ring-emerald-200">
    </form>
    <div class="flex items-center gap-4 text-[12px] font-black text-gray-500">
        <a href="/sgt" class="hover:text-emerald-600">SGT</a>
        <a href="/wallet" class="hover:text-emerald-600">지갑</a>
        {% if current_user.is_authenticated %}
            {% if current_user.is_admin %}<a href="/admin" class="text-red-500">관리자</a>{% endif %}
            <a href="/profile" class="hover:text-emerald-600">{{ current_user.username or '내 정보' }}</a>
            <a href="/logout" class="text-gray-300 hover:text-red-500"><i class="fas fa-sign-out-alt"></i></a>
        {% else %}
            <a href="/login" class="bg-emerald-600 text-white px-4 py-2 rounded-xl">로그인</a>
        {% endif %}
    </div>
</nav>
<main class="min-h-screen">
{% with messages = get_flashed_messages() %}
    {% if messages %}
    <div class="max-w-3xl mx-auto mt-6 px-4 space-y-2">
        {% for m in messages %}
        <div class="bg-gray-900 text-white px-6 py-4 rounded-2xl text-sm font-bold shadow-xl">{{ m }}</div>
        {% endfor %}
    </div>
    {% endif %}
{% endwith %}
"""

FOOTER_HTML = """
</main>
<footer class="bg-white border-t mt-24 py-12 px-6 text-center text-[11px] text-gray-400 font-bold space-y-3">
    <div class="flex justify-center gap-6">
        <a href="/terms" class="hover:text-gray-700">이용약관</a>
        <a href="/privacy" class="hover:text-gray-700 text-gray-600">개인정보처리방침</a>
        <a href="/return-policy" class="hover:text-gray-700">환불정책</a>
        <a href="/support/notices" class="hover:text-gray-700">공지사항</a>
    </div>
    <p>상가톡 SanggaTalk · Your Local Business Platform</p>
</footer>
</body>
</html>
"""

KIOSK_HEADER_HTML = """
<!DOCTYPE html>
<html lang="ko">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0, maximum-scale=1.0, user-scalable=no">
    <title>{{ page_title or '상가톡 키오스크' }}</title>
    <script src="https://cdn.tailwindcss.com"></script>
    <link href="https://cdnjs.cloudflare.com/ajax/libs/font-awesome/6.0.0/css/all.min.css" rel="stylesheet">
</head>
<body class="bg-slate-100 text-slate-800 font-bold select-none">
{% with messages = get_flashed_messages() %}
    {% if messages %}
    <div class="fixed top-4 inset-x-0 z-50 flex flex-col items-center gap-2">
        {% for m in messages %}
        <div class="bg-slate-900 text-white px-8 py-4 rounded-2xl text-base shadow-2xl">{{ m }}</div>
        {% endfor %}
    </div>
    {% endif %}
{% endwith %}
"""

KIOSK_FOOTER_HTML = """
</body>
</html>
"""


def get_admin_nav():
    """관리자 페이지 공통 상단 메뉴. 현재 경로의 메뉴에 밑줄 표시"""
    return """
    <div class="bg-white border-b px-6 h-14 flex items-center gap-6 text-[12px] font-black text-slate-400">
        <span class="text-red-500 italic">ADMIN</span>
        <a href="{{ url_for('admin.admin_store_applications') }}" class="{% if '/applications' in request.path %}text-emerald-600 border-b-2 border-emerald-600{% else %}hover:text-emerald-600{% endif %} pb-1">입점 신청</a>
        <a href="{{ url_for('admin.admin_approved_stores') }}" class="{% if '/stores' in request.path %}text-emerald-600 border-b-2 border-emerald-600{% else %}hover:text-emerald-600{% endif %} pb-1">승인 매장</a>
        <a href="{{ url_for('admin.admin_exchanges') }}" class="{% if request.path.endswith('/exchanges') %}text-emerald-600 border-b-2 border-emerald-600{% else %}hover:text-emerald-600{% endif %} pb-1">환전 관리</a>
        <a href="{{ url_for('admin.admin_exchange_in') }}" class="{% if '/exchange-in' in request.path %}text-emerald-600 border-b-2 border-emerald-600{% else %}hover:text-emerald-600{% endif %} pb-1">SGT→원화 요청</a>
        <a href="{{ url_for('admin.admin_notices') }}" class="{% if '/notices' in request.path %}text-emerald-600 border-b-2 border-emerald-600{% else %}hover:text-emerald-600{% endif %} pb-1">공지사항</a>
    </div>
    """


def get_store_nav():
    """매장 관리 페이지 공통 탭"""
    return """
    <div class="max-w-5xl mx-auto px-4 mt-6 flex flex-wrap gap-2 text-[12px] font-black">
        <a href="{{ url_for('store.store_products', store_id=store.id) }}" class="px-4 py-2 rounded-xl {% if '/products' in request.path %}bg-emerald-600 text-white{% else %}bg-white border text-gray-500{% endif %}">상품</a>
        <a href="{{ url_for('store.store_orders', store_id=store.id) }}" class="px-4 py-2 rounded-xl {% if '/orders' in request.path %}bg-emerald-600 text-white{% else %}bg-white border text-gray-500{% endif %}">주문</a>
        <a href="{{ url_for('store.store_coupons', store_id=store.id) }}" class="px-4 py-2 rounded-xl {% if '/coupons' in request.path %}bg-emerald-600 text-white{% else %}bg-white border text-gray-500{% endif %}">쿠폰</a>
        <a href="{{ url_for('store.store_kiosk_edit', store_id=store.id) }}" class="px-4 py-2 rounded-xl {% if '/kiosk-edit' in request.path %}bg-emerald-600 text-white{% else %}bg-white border text-gray-500{% endif %}">키오스크</a>
        <a href="{{ url_for('store.store_markdown_edit', store_id=store.id) }}" class="px-4 py-2 rounded-xl {% if '/markdown-edit' in request.path %}bg-emerald-600 text-white{% else %}bg-white border text-gray-500{% endif %}">소개글</a>
        <a href="{{ url_for('store.store_edit', store_id=store.id) }}" class="px-4 py-2 rounded-xl {% if '/edit/' in request.path %}bg-emerald-600 text-white{% else %}bg-white border text-gray-500{% endif %}">매장 정보</a>
    </div>
    """


def render_page(content, **context):
    """공통 헤더/푸터로 감싼 페이지 렌더링"""
    return render_template_string(HEADER_HTML + content + FOOTER_HTML, **context)


def render_kiosk_page(content, **context):
    return render_template_string(KIOSK_HEADER_HTML + content + KIOSK_FOOTER_HTML, **context)
