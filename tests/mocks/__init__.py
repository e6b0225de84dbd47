"""测试用 mock 服务"""
