#!/usr/bin/env python3.11
"""
QR Code Locator Web App
Run: python3.11 qr_web.py
Visit: http://<your-ip>:8080 on your phone
"""

import logging

import cv2
import numpy as np
from flask import Flask, request, jsonify, render_template_string

from qr_clip_decode import opencv_clip_decoder
from qr_locate import QrLocator

log = logging.getLogger(__name__)

app = Flask(__name__)
locator = QrLocator(opencv_clip_decoder)

HTML = '''
<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>QR Locator</title>
    <style>
        body { font-family: -apple-system, sans-serif; background: #16213e; color: #fff;
               max-width: 500px; margin: 0 auto; padding: 20px; }
        h1 { text-align: center; font-size: 24px; }
        label { display: block; padding: 14px; margin: 8px 0; border-radius: 12px;
                text-align: center; background: #2196F3; cursor: pointer; }
        input[type="file"] { display: none; }
        #preview { max-width: 100%; max-height: 300px; display: none; margin: 15px 0; }
        #result { padding: 20px; border-radius: 12px; display: none; word-break: break-all; }
        #result.success { background: rgba(76, 175, 80, 0.2); }
        #result.error { background: rgba(244, 67, 54, 0.2); }
    </style>
</head>
<body>
    <h1>QR Locator</h1>
    <label>Camera<input type="file" id="cameraInput" accept="image/*" capture="environment"></label>
    <label>Gallery<input type="file" id="galleryInput" accept="image/*"></label>
    <img id="preview" alt="Preview">
    <div id="result"></div>
    <script>
        const preview = document.getElementById('preview');
        const result = document.getElementById('result');
        document.getElementById('cameraInput').onchange = handleFile;
        document.getElementById('galleryInput').onchange = handleFile;

        function handleFile(e) {
            if (!e.target.files.length) return;
            const file = e.target.files[0];
            preview.src = URL.createObjectURL(file);
            preview.style.display = 'block';
            result.style.display = 'block';
            result.className = '';
            result.textContent = 'Decoding...';

            const formData = new FormData();
            formData.append('image', file);
            fetch('/decode', { method: 'POST', body: formData })
                .then(r => r.json())
                .then(data => {
                    if (data.success && data.found) {
                        result.className = 'success';
                        result.textContent = data.result;
                    } else {
                        result.className = 'error';
                        result.textContent = data.success ? 'No QR code found' : 'Error: ' + data.error;
                    }
                })
                .catch(err => {
                    result.className = 'error';
                    result.textContent = 'Network error: ' + err.message;
                });
        }
    </script>
</body>
</html>
'''

@app.route('/')
def index():
    return render_template_string(HTML)

@app.route('/decode', methods=['POST'])
def decode():
    if 'image' not in request.files:
        return jsonify({'success': False, 'error': 'No image uploaded'})

    file = request.files['image']
    if file.filename == '':
        return jsonify({'success': False, 'error': 'No file selected'})

    data = np.frombuffer(file.read(), dtype=np.uint8)
    image = cv2.imdecode(data, cv2.IMREAD_COLOR) if data.size else None
    if image is None:
        return jsonify({'success': False, 'error': 'Cannot read image'})

    result = locator.decode(image)
    log.info(f"[DECODE] {file.filename}: {'found' if result else 'not found'}")
    return jsonify({'success': True, 'found': result is not None, 'result': result})

if __name__ == '__main__':
    import socket

    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(name)s: %(message)s")

    # Get local IP
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(('8.8.8.8', 80))
        ip = s.getsockname()[0]
    except OSError:
        ip = '127.0.0.1'
    finally:
        s.close()

    port = 8080
    print("=" * 50)
    print("QR Code Locator Web App")
    print("=" * 50)
    print(f"\nVisit on your phone: http://{ip}:{port}")
    print(f"Or on this computer: http://localhost:{port}")
    print("\nPress Ctrl+C to stop\n")

    app.run(host='0.0.0.0', port=port, debug=False)
