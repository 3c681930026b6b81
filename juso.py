# --------------------------------------------------------------------------------
# 도로명주소(juso.go.kr) 팝업 연동
# - /juso/popup         : 주소 검색 팝업 (addrCoordUrl.do 로 form POST)
# - /api/juso/callback  : 팝업 결과를 opener.jusoCallBack(...) 으로 전달
# - /api/juso/convert   : 좌표(EPSG:5179) -> 위경도(WGS84) 변환
# --------------------------------------------------------------------------------
import json
import math
import logging

from flask import Blueprint, request, jsonify, url_for, render_template_string
from pyproj import Transformer

import config

logger = logging.getLogger(__name__)

address_bp = Blueprint('address', __name__)

JUSO_POPUP_URL = "https://business.juso.go.kr/addrlink/addrCoordUrl.do"

# UTM-K (GRS80) 좌표계
EPSG_5179 = ("+proj=tmerc +lat_0=38 +lon_0=127.5 +k=0.9996 +x_0=1000000 +y_0=2000000 "
             "+ellps=GRS80 +units=m +no_defs")

# 팝업이 돌려주는 필드 (jusoCallBack 인자 순서)
JUSO_FIELDS = (
    'roadFullAddr', 'roadAddrPart1', 'addrDetail', 'roadAddrPart2', 'engAddr',
    'jibunAddr', 'zipNo', 'admCd', 'rnMgtSn', 'bdMgtSn', 'detBdNmList', 'bdNm',
    'bdKdcd', 'siNm', 'sggNm', 'emdNm', 'liNm', 'rn', 'udrtYn', 'buldMnnm',
    'buldSlno', 'mtYn', 'lnbrMnnm', 'lnbrSlno', 'emdNo', 'entX', 'entY',
)

_transformer = None


def _get_transformer():
    global _transformer
    if _transformer is None:
        _transformer = Transformer.from_crs(EPSG_5179, "EPSG:4326", always_xy=True)
    return _transformer


def convert_coordinates(ent_x, ent_y):
    """EPSG:5179 (entX, entY) -> (위도, 경도). 숫자가 아니면 ValueError"""
    try:
        x = round(float(ent_x), 6)
        y = round(float(ent_y), 6)
    except (TypeError, ValueError):
        raise ValueError(f"잘못된 좌표값: entX={ent_x!r}, entY={ent_y!r}")
    if not (math.isfinite(x) and math.isfinite(y)):
        raise ValueError("좌표값이 유한한 숫자가 아닙니다.")
    lng, lat = _get_transformer().transform(x, y)
    return lat, lng


def build_callback_html(values):
    """팝업 창에서 opener 의 jusoCallBack 을 호출하고 닫는 페이지"""
    args = ",\n                ".join(
        json.dumps(values.get(name, '') or '', ensure_ascii=False).replace("</", "<\\/")
        for name in JUSO_FIELDS
    )
    return f"""<html>
<head><meta charset="UTF-8"></head>
<body>
<script>
    var parentWindow = window.opener || window.parent;
    if (parentWindow && parentWindow.jusoCallBack) {{
        parentWindow.jusoCallBack(
                {args}
        );
    }}
    window.close();
</script>
</body>
</html>"""


@address_bp.route('/api/juso/callback', methods=['GET', 'POST'])
def juso_callback():
    params = request.form if request.method == 'POST' else request.args
    values = {name: params.get(name, '') for name in JUSO_FIELDS}
    logger.info("[주소] 팝업 콜백 zipNo=%s entX=%s entY=%s", values['zipNo'], values['entX'], values['entY'])
    return build_callback_html(values), 200, {'Content-Type': 'text/html; charset=UTF-8'}


@address_bp.route('/juso/popup')
def juso_popup():
    """팝업 창에서 열리는 중계 페이지. 승인키와 returnUrl 을 실어 juso.go.kr 로 POST"""
    return_url = url_for('address.juso_callback', _external=True)
    html = """<html>
<head><meta charset="UTF-8"><title>주소 검색</title></head>
<body>
<form id="jusoForm" method="post" action="{{ popup_url }}">
    <input type="hidden" name="confmKey" value="{{ confm_key }}">
    <input type="hidden" name="returnUrl" value="{{ return_url }}">
    <input type="hidden" name="resultType" value="4">
</form>
<script>document.getElementById('jusoForm').submit();</script>
</body>
</html>"""
    return render_template_string(html, popup_url=JUSO_POPUP_URL, confm_key=config.JUSO_CONFM_KEY,
                                  return_url=return_url)


@address_bp.route('/api/juso/convert')
def juso_convert():
    try:
        lat, lng = convert_coordinates(request.args.get('entX'), request.args.get('entY'))
    except ValueError as e:
        logger.warning("[주소] 좌표 변환 실패: %s", e)
        return jsonify({'message': '좌표 변환에 실패했습니다.'}), 400
    return jsonify({'lat': lat, 'lng': lng})


# 주소 입력 폼에 포함하는 스크립트 (address / latitude / longitude 입력칸 채움)
ADDRESS_POPUP_SCRIPT = """
<script>
function openJusoPopup() {
    window.open("{{ url_for('address.juso_popup') }}", "pop", "width=570,height=420,scrollbars=yes,resizable=yes");
}
function jusoCallBack(roadFullAddr, roadAddrPart1, addrDetail, roadAddrPart2, engAddr, jibunAddr, zipNo,
                      admCd, rnMgtSn, bdMgtSn, detBdNmList, bdNm, bdKdcd, siNm, sggNm, emdNm, liNm, rn,
                      udrtYn, buldMnnm, buldSlno, mtYn, lnbrMnnm, lnbrSlno, emdNo, entX, entY) {
    document.getElementById('address').value = roadFullAddr;
    var zip = document.getElementById('zip_code');
    if (zip) zip.value = zipNo;
    if (!entX || !entY) return;
    fetch("{{ url_for('address.juso_convert') }}?entX=" + encodeURIComponent(entX) + "&entY=" + encodeURIComponent(entY))
        .then(function (r) { return r.ok ? r.json() : null; })
        .then(function (data) {
            if (!data) return;
            document.getElementById('latitude').value = data.lat;
            document.getElementById('longitude').value = data.lng;
        });
}
</script>
"""
